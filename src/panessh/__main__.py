"""Allow ``python -m panessh`` (used when re-running inside a new session)."""

from panessh.cli import main

if __name__ == "__main__":
    main()
