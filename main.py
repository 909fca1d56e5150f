"""Orchestration core CLI (run from the repository root)."""

from orchestrationCore.main import main


if __name__ == "__main__":
    main()
