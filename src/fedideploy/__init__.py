"""fedideploy — provision and bootstrap a self-hosted Mastodon instance."""

__version__ = "0.1.0"
