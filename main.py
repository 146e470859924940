from __future__ import annotations

import argparse
import sys
import traceback
from pathlib import Path

from posterstamp.config import load_config
from posterstamp.log import get_log_file_path, get_logger, setup_logging

_log = get_logger("main")


def _filter_platform_startup_args(argv: list[str]) -> list[str]:
    """Drop arguments injected by platform launchers (macOS ``-psn_*``)."""
    return [arg for arg in argv if not (sys.platform == "darwin" and arg.startswith("-psn_"))]


def _install_exception_logging() -> None:
    """Windowed builds have no console, so uncaught exceptions go to the log."""

    def _log_uncaught_exception(exc_type, exc_value, exc_tb) -> None:
        message = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
        _log.error("uncaught exception\n%s", message.rstrip())
        sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = _log_uncaught_exception


def main() -> None:
    cfg = load_config()
    log_file = cfg.get("log_file")
    setup_logging(str(cfg.get("log_level") or "info"), Path(str(log_file)) if log_file else None)
    _install_exception_logging()
    _log.info("startup argv=%s", sys.argv[1:])
    if get_log_file_path():
        _log.info("log file=%s", get_log_file_path())

    parser = argparse.ArgumentParser(description="Launch the PosterStamp template editor.")
    parser.add_argument("path", nargs="?", type=Path, default=None, help="Template or base image to open.")
    parser.add_argument("--file", type=Path, default=None, help="Open this template or base image on startup.")
    args = parser.parse_args(_filter_platform_startup_args(sys.argv[1:]))

    startup = args.path or args.file
    startup_file = startup.resolve(strict=False) if startup else None
    _log.info("startup_file=%s", startup_file)

    try:
        from posterstamp.gui.editor import launch_gui
    except ImportError as exc:
        _log.error("GUI import failed: %s", exc)
        raise SystemExit(f"GUI is unavailable: {exc}") from exc

    _log.info("launching GUI")
    launch_gui(startup_file=startup_file)
    _log.info("GUI returned normally")


if __name__ == "__main__":
    main()
