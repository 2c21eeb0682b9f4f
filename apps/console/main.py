import logging
import signal
import sys
import threading

from biomewatch.shared.paths import ensure_app_dirs, scratch_dir
from biomewatch.shared.store import ConfigStore
from biomewatch.core.logging_ import setup_logging
from biomewatch.core.events import EngineEvent, EventChannel
from biomewatch.core.logs.reader import SafeLogReader
from biomewatch.core.monitor.engine import DetectionEngine

log = logging.getLogger("biomewatch.console")


def log_event(evt: EngineEvent) -> None:
    if evt.type == "STATUS":
        return  # the engine already logs its status lines
    if evt.type == "ERROR":
        log.error(evt.message)
        return
    log.info("%s %s", evt.type, evt.to_dict())


def main() -> None:
    ensure_app_dirs()
    setup_logging()

    store = ConfigStore()
    cfg = store.load()
    log.info(f"Loaded config from {store.path()}")

    channel = EventChannel()
    channel.subscribe(log_event)
    engine = DetectionEngine(
        cfg.to_engine_config(),
        channel=channel,
        reader=SafeLogReader(scratch_dir()),
    )

    done = threading.Event()

    def signal_handler(sig, frame):
        print("\nReceived interrupt signal (Ctrl+C), shutting down...")
        done.set()

    if hasattr(signal, 'SIGINT'):
        signal.signal(signal.SIGINT, signal_handler)

    channel.start()
    engine.start()
    try:
        while not done.wait(0.5):
            pass
    finally:
        engine.stop()
        engine.join(timeout=10.0)
        channel.stop()
    sys.exit(0)


if __name__ == "__main__":
    main()
