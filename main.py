# main.py
import os, sys
sys.path.append(os.path.dirname(__file__))  # 確保能找到 config.py

import argparse
import logging, traceback
from logging.handlers import RotatingFileHandler

from utils.crashlog import setup_crashlog, log_exception, log_dir
from config import AppConfig, AudioConfig, GridConfig, TransportConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

def _init_logging(level=logging.INFO):
    if logging.getLogger().handlers:
        return

    logging.basicConfig(level=level, format=LOG_FORMAT, encoding="utf-8")
    try:
        fh = RotatingFileHandler(os.path.join(log_dir(), "app.log"),
                                 maxBytes=2*1024*1024, backupCount=3, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(fh)
    except OSError:
        logging.warning("無法建立 app.log，只輸出到 console", exc_info=True)

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="stepgrid", description="Grid step sequencer")
    ap.add_argument('--bpm', type=float, default=120.0)
    ap.add_argument('--steps', type=int, default=64, help="initial timeline length in sixteenth steps")
    ap.add_argument('--grow', type=int, default=16, help="timeline growth increment")
    ap.add_argument('--midi-port', default=None, help="MIDI output port name (mido); default is the system device")
    ap.add_argument('--volume', type=float, default=0.8, help="master volume")
    ap.add_argument('--hover-preview', action='store_true', help="play notes under the pointer")
    ap.add_argument('--place-preview', action='store_true', help="play a note when it is placed")
    ap.add_argument('--state', default=None, help="state file path")
    ap.add_argument('--debug', action='store_true')
    return ap

def config_from_args(args) -> AppConfig:
    return AppConfig(
        grid=GridConfig(default_steps=args.steps, grow_increment=args.grow),
        transport=TransportConfig(bpm=args.bpm),
        audio=AudioConfig(midi_port=args.midi_port, master_volume=args.volume,
                          preview_on_hover=args.hover_preview,
                          preview_on_place=args.place_preview),
        state_path=args.state,
    )

def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_crashlog()
    _init_logging(logging.DEBUG if args.debug else logging.INFO)
    logging.info("應用程式啟動")

    from app import App  # pygame 視窗在這之後才建立
    App(config_from_args(args)).run()

if __name__ == '__main__':
    try:
        main()
    except Exception as e:
        try:
            log_exception("Top-level exception", e)
        except OSError:
            pass
        logging.error("未捕捉的例外：%s", e, exc_info=True)
        print("程式發生錯誤，請到 logs/ 資料夾看 app.log 與 error-*.txt")
        traceback.print_exc()
