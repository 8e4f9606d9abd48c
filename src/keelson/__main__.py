"""Entry point for 'python -m keelson' command."""

from keelson.cli import main

if __name__ == "__main__":
    main()
