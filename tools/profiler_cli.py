from __future__ import annotations
import argparse, json, sys, time
from dataclasses import replace

import structlog

from app.analytics.config import ProfilerConfig, StoreConfig
from app.logging_config import configure_logging
from core.storage.profile_store import ProfileStore, SqliteKV

def _store(db: str) -> ProfileStore:
    scfg = StoreConfig(db_path=db)
    return ProfileStore(backend=SqliteKV(scfg.db_path), key=scfg.key, format_version=scfg.format_version)

def cmd_inspect(args) -> int:
    store = _store(args.db)
    meta = store.metadata()
    if meta is None:
        print("No stored profile.")
        return 1
    state = store.load()
    out = dict(meta)
    out["loadable"] = state is not None
    if state is not None:
        out["trainingSampleCount"] = state.training_sample_count
        out["featureStats"] = state.feature_stats.to_record()
    print(json.dumps(out, indent=2))
    return 0

def cmd_clear(args) -> int:
    ok = _store(args.db).clear()
    print("Profile cleared." if ok else "Could not clear profile.")
    return 0 if ok else 2

def cmd_listen(args) -> int:
    from app.controller.runner import HookRuntime

    log = structlog.get_logger()
    cfg = ProfilerConfig()
    if args.duration is not None:
        cfg = replace(cfg, training_duration_s=args.duration)
    if args.threshold is not None:
        cfg = replace(cfg, anomaly_threshold=args.threshold)

    last = {"phase": None}
    def on_update(st):
        if st.phase != last["phase"]:
            last["phase"] = st.phase
            log.info("listen.phase", phase=st.phase.value, samples=st.samples_collected)

    rt = HookRuntime(config=cfg, store_config=StoreConfig(db_path=args.db), global_hook=True, on_update=on_update)
    rt.start()
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        rt.stop()
    return 0

def cmd_run(args) -> int:
    from ui.main_window import MainWindow
    win = MainWindow(store_config=StoreConfig(db_path=args.db))
    win.mainloop()
    return 0

def main(argv=None):
    ap = argparse.ArgumentParser(prog="typing-profiler", description="Typing rhythm profiler")
    ap.add_argument("--debug", action="store_true")
    sub = ap.add_subparsers(dest="cmd", required=True)

    default_db = StoreConfig().db_path

    p_run = sub.add_parser("run", help="Open the typing window")
    p_run.add_argument("--db", default=default_db)

    p_listen = sub.add_parser("listen", help="Profile global keystrokes headless, log scores")
    p_listen.add_argument("--db", default=default_db)
    p_listen.add_argument("--duration", type=float, help="Training phase length in seconds")
    p_listen.add_argument("--threshold", type=float, help="Score at which a keystroke is flagged")

    p_inspect = sub.add_parser("inspect", help="Show stored profile metadata")
    p_inspect.add_argument("--db", default=default_db)

    p_clear = sub.add_parser("clear", help="Delete the stored profile")
    p_clear.add_argument("--db", default=default_db)

    args = ap.parse_args(argv)
    configure_logging(debug=args.debug, json_logs=args.cmd != "listen")

    handlers = {"run": cmd_run, "listen": cmd_listen, "inspect": cmd_inspect, "clear": cmd_clear}
    sys.exit(handlers[args.cmd](args))

if __name__ == "__main__":
    main()
