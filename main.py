"""Main entry point for the medquiz CLI."""

from medquiz.cli.app import app


def main():
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    main()
