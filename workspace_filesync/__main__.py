"""
Entry point for ``python -m workspace_filesync``.
"""

from workspace_filesync.cli import main


if __name__ == "__main__":
    main()
