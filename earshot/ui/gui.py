"""
Earshot GUI - single-window sound listener

Start/Stop buttons, a read-only output area showing the labels heard in
the last classification pass, and a status line for short messages.
"""

import tkinter as tk
from tkinter import messagebox
from typing import Any, Dict, Optional

from earshot.core.listener import SoundListener, create_sound_listener
from earshot.core.models import ListenerState
from earshot.core.permission import InputDevicePermission
from earshot.ui.display import TextWidgetDisplay, TkDispatcher
from earshot.utils.config import get_default_config, load_config
from earshot.utils.errors import ConfigurationError
from earshot.utils.logging import get_logger, setup_logging_from_config

# How long a status message stays visible
STATUS_DURATION_MS = 2000


class EarshotStyle:
    """Minimalist greyscale colour scheme with a red accent."""

    NAME = "Earshot"

    BG_DARK = "#1a1a1a"
    BG_MEDIUM = "#2d2d2d"
    BG_LIGHTER = "#4a4a4a"
    BG_HOVER = "#525252"

    TEXT_PRIMARY = "#f5f5f5"
    TEXT_SECONDARY = "#d0d0d0"
    TEXT_DIM = "#999999"
    TEXT_DISABLED = "#666666"

    ACCENT_RED = "#c62828"
    ACCENT_RED_LIGHT = "#e53935"

    FONT_TITLE = ("Helvetica", 16, "normal")
    FONT_BODY = ("Helvetica", 10, "normal")
    FONT_OUTPUT = ("Helvetica", 14, "normal")
    FONT_SMALL = ("Helvetica", 9, "normal")


class EarshotGUI:
    """Main window wiring the buttons to a SoundListener."""

    def __init__(self, root: tk.Tk, config: Optional[Dict[str, Any]] = None):
        self.root = root
        self.root.title("Earshot - Sound Classifier")
        self.root.geometry("420x480")
        self.root.configure(bg=EarshotStyle.BG_DARK)
        self.logger = get_logger("gui")

        self.config = config if config is not None else self._load_config()
        self._status_job: Optional[str] = None

        self._build_ui()
        self.dispatcher = TkDispatcher(self.root)

        permission = InputDevicePermission(
            self.config.get("capture", {}).get("device"),
            prompt=self._show_permission_prompt,
        )
        self.listener: SoundListener = create_sound_listener(
            self.config,
            display=TextWidgetDisplay(self.output_text),
            dispatcher=self.dispatcher,
            permission=permission,
            on_status=self._show_status,
            on_state_change=self._on_state_change,
        )

        self.stop_button.config(state=tk.DISABLED)
        if self.listener.gate.check_on_launch():
            self.start_button.config(state=tk.NORMAL)

        # Coming back to the window re-checks the permission (no re-request)
        self.root.bind("<FocusIn>", self._on_focus_in)
        self.root.protocol("WM_DELETE_WINDOW", self._on_close)

    def _load_config(self) -> Dict[str, Any]:
        try:
            config = load_config()
        except ConfigurationError as e:
            self.logger.error(f"Falling back to default configuration: {e}")
            messagebox.showerror("Configuration Error", str(e))
            config = get_default_config()
        setup_logging_from_config(config)
        return config

    def _build_ui(self):
        """Build the user interface."""
        title_label = tk.Label(
            self.root,
            text="Earshot",
            bg=EarshotStyle.BG_DARK,
            fg=EarshotStyle.TEXT_PRIMARY,
            font=EarshotStyle.FONT_TITLE,
            pady=15,
        )
        title_label.pack(fill=tk.X)

        self.output_text = tk.Text(
            self.root,
            height=10,
            wrap=tk.WORD,
            bg=EarshotStyle.BG_MEDIUM,
            fg=EarshotStyle.TEXT_PRIMARY,
            font=EarshotStyle.FONT_OUTPUT,
            relief=tk.FLAT,
            bd=0,
            padx=12,
            pady=12,
            highlightthickness=0,
        )
        self.output_text.pack(fill=tk.BOTH, expand=True, padx=15)
        self.output_text.config(state=tk.DISABLED)

        button_row = tk.Frame(self.root, bg=EarshotStyle.BG_DARK, pady=15)
        button_row.pack(fill=tk.X)

        self.start_button = self._create_button(button_row, "Start Recording", self._on_start)
        self.start_button.pack(side=tk.LEFT, expand=True, padx=(15, 5))

        self.stop_button = self._create_button(button_row, "Stop Recording", self._on_stop)
        self.stop_button.pack(side=tk.LEFT, expand=True, padx=(5, 15))

        self.status_label = tk.Label(
            self.root,
            text="",
            bg=EarshotStyle.BG_DARK,
            fg=EarshotStyle.TEXT_DIM,
            font=EarshotStyle.FONT_SMALL,
            pady=8,
        )
        self.status_label.pack(fill=tk.X)

    def _create_button(self, parent, text, command):
        """Create a flat styled button, disabled until enabled explicitly."""
        return tk.Button(
            parent,
            text=text,
            command=command,
            bg=EarshotStyle.BG_LIGHTER,
            fg=EarshotStyle.TEXT_PRIMARY,
            font=EarshotStyle.FONT_BODY,
            relief=tk.FLAT,
            bd=0,
            activebackground=EarshotStyle.BG_HOVER,
            activeforeground=EarshotStyle.TEXT_PRIMARY,
            disabledforeground=EarshotStyle.TEXT_DISABLED,
            highlightthickness=0,
            overrelief=tk.FLAT,
            state=tk.DISABLED,
            cursor="hand2",
            padx=15,
            pady=8,
        )

    def _on_start(self):
        self.start_button.config(state=tk.DISABLED)
        self.stop_button.config(state=tk.NORMAL)
        if not self.listener.start():
            self._sync_buttons(self.listener.state)

    def _on_stop(self):
        self.listener.stop()
        self._sync_buttons(self.listener.state)

    def _on_state_change(self, state: ListenerState):
        self._sync_buttons(state)

    def _sync_buttons(self, state: ListenerState):
        recording = state is ListenerState.RECORDING
        self.stop_button.config(state=tk.NORMAL if recording else tk.DISABLED)
        if recording:
            self.start_button.config(state=tk.DISABLED)
        elif self.listener.gate.is_granted():
            self.start_button.config(state=tk.NORMAL)
        else:
            self.start_button.config(state=tk.DISABLED)

    def _on_focus_in(self, event):
        # <FocusIn> fires for every child widget; only the window matters
        if event.widget is not self.root or self.listener.is_recording:
            return
        self._sync_buttons(self.listener.state)

    def _show_permission_prompt(self, message: str):
        messagebox.showinfo("Microphone Access", message)

    def _show_status(self, message: str):
        """Show a short-lived status message."""
        self.status_label.config(text=message)
        if self._status_job is not None:
            self.root.after_cancel(self._status_job)
        self._status_job = self.root.after(STATUS_DURATION_MS, self._clear_status)

    def _clear_status(self):
        self._status_job = None
        self.status_label.config(text="")

    def _on_close(self):
        self.listener.shutdown()
        self.dispatcher.close()
        self.root.destroy()


def main():
    """Main entry point for GUI."""
    root = tk.Tk()
    EarshotGUI(root)
    root.mainloop()


if __name__ == "__main__":
    main()
