"""
User interface: display surfaces, the desktop window and UI-thread dispatch.
"""
