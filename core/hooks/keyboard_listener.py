# core/hooks/keyboard_listener.py
from __future__ import annotations
from typing import Optional
import threading
from pynput import keyboard
import structlog

from .events import KeyEvent

log = structlog.get_logger()

def _key_to_code(k: keyboard.Key | keyboard.KeyCode | None) -> int:
    """Virtual key code; falls back to the upper-cased character ordinal."""
    try:
        if isinstance(k, keyboard.KeyCode):
            if k.vk is not None:
                return int(k.vk)
            return ord(k.char.upper()) if k.char else 0
        if isinstance(k, keyboard.Key):
            vk = getattr(k.value, "vk", None)
            return int(vk) if vk is not None else 0
    except Exception:
        pass
    return 0

class KeyboardHook:
    """Global pynput listener publishing one KeyEvent per key press onto a bus."""
    def __init__(self, bus):
        self.bus = bus
        self._listener: Optional[keyboard.Listener] = None
        self._stop_evt = threading.Event()

    def start(self) -> None:
        if self._listener and self._listener.running:
            return
        self._stop_evt.clear()
        self._listener = keyboard.Listener(on_press=self._on_press, suppress=False)
        self._listener.daemon = True
        self._listener.start()
        log.info("kbd.start")

    def stop(self) -> None:
        self._stop_evt.set()
        if self._listener:
            self._listener.stop()
            self._listener = None
        log.info("kbd.stop")

    def _on_press(self, key):
        # key-down only; releases carry no rhythm signal here
        self.bus.publish(KeyEvent(key_code=_key_to_code(key)))
