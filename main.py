"""
Earshot - Main Entry Point

Opens the desktop window. For the terminal front end use the
``earshot`` command (earshot/cli.py).

Example usage:
    python main.py
"""

from earshot.ui.gui import main

if __name__ == "__main__":
    main()
