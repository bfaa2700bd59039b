"""Main entry point for the webhook server package."""

from webhook_server.cli import main

if __name__ == "__main__":
    main()
