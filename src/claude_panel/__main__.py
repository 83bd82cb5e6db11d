"""Entry point for `python -m claude_panel`."""

import sys


def main():
    from claude_panel.app import run
    sys.exit(run())


if __name__ == "__main__":
    main()
