"""GitLab REST API integration."""
