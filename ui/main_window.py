from __future__ import annotations
import tkinter as tk
from tkinter import ttk
from typing import Optional

from app.analytics.config import ProfilerConfig, StoreConfig
from app.controller.runner import HookRuntime
from core.hooks.events import KeyEvent, Phase

PHASE_TEXT = {
    Phase.IDLE: "Start typing to begin training",
    Phase.TRAINING: "Training on your rhythm…",
    Phase.PREDICTING: "Scoring keystrokes",
}

class MainWindow(tk.Tk):
    """Typing pad + live phase / countdown / score readout. View glue only."""
    def __init__(self, config: Optional[ProfilerConfig] = None, store_config: Optional[StoreConfig] = None):
        super().__init__()
        self.title("Typing Rhythm Profiler")
        self.geometry("720x420")
        self.minsize(520, 320)

        self._content = ttk.Frame(self, padding=12)
        self._content.pack(fill="both", expand=True)

        topbar = ttk.Frame(self._content)
        topbar.pack(side="top", fill="x", pady=(0, 8))

        self.phase_var = tk.StringVar(value=PHASE_TEXT[Phase.IDLE])
        ttk.Label(topbar, textvariable=self.phase_var).pack(side="left")

        self.reset_btn = ttk.Button(topbar, text="Delete profile", command=self._reset)
        self.reset_btn.pack(side="right")

        stats = ttk.Frame(self._content)
        stats.pack(side="top", fill="x", pady=(0, 8))
        self.countdown_var = tk.StringVar(value="")
        self.samples_var = tk.StringVar(value="Samples: 0")
        self.score_var = tk.StringVar(value="Score: –")
        for var in (self.countdown_var, self.samples_var, self.score_var):
            ttk.Label(stats, textvariable=var, width=22).pack(side="left")

        self.text = tk.Text(self._content, height=12, wrap="word")
        self.text.pack(fill="both", expand=True)
        self.text.bind("<KeyPress>", self._on_key)
        self.text.focus_set()

        self.status_var = tk.StringVar(value="Ready")
        self._status = ttk.Label(self, textvariable=self.status_var, anchor="w", padding=(8, 4))
        self._status.pack(side="bottom", fill="x")

        self._runtime = HookRuntime(config=config, store_config=store_config)
        if self._runtime.start():
            self.set_status("Loaded saved profile")

        self.protocol("WM_DELETE_WINDOW", self._on_close)
        self.after(100, self._refresh)

    def _on_key(self, event):
        self._runtime.submit(KeyEvent(key_code=int(event.keycode)))

    def _reset(self):
        self._runtime.reset()
        self.text.delete("1.0", "end")
        self.set_status("Profile deleted")

    def _refresh(self):
        st = self._runtime.session.state()
        self.phase_var.set(PHASE_TEXT[st.phase])
        self.countdown_var.set(f"Training: {st.time_remaining_s}s left" if st.phase == Phase.TRAINING else "")
        self.samples_var.set(f"Samples: {st.samples_collected}")
        if st.prediction_score is None:
            self.score_var.set("Score: –")
        else:
            self.score_var.set(f"Score: {st.prediction_score:.3f}" + ("  ⚠" if st.flagged else ""))
        self.after(100, self._refresh)

    def set_status(self, text: str) -> None:
        self.status_var.set(text)
        self._status.update_idletasks()

    def _on_close(self):
        try:
            self._runtime.stop()
        finally:
            self.destroy()
