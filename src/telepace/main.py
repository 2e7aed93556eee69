"""
Main telepace application.
Loads a script, wires the playback controller to the speech backend and
serves it to browser clients.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
from pathlib import Path

from . import debug_log
from .errors import CapabilityError
from .audio import list_devices
from .config import (
    PLAYBACK_MODES,
    Config,
    clamp_max_words_per_line,
    clamp_rsvp_speed,
    clamp_scroll_speed,
    get_config_path,
    load_config,
    save_config,
)
from .playback import PlaybackStateMachine
from .providers import (
    DEFAULT_MODEL_ID,
    available_models,
    create_session_factory,
    download_model,
    is_voice_supported,
    model_for_locale,
    preload_model,
)
from .scheduler import AsyncioScheduler
from .script_index import calculate_duration, calculate_wpm, is_rtl
from .server import WebServer
from .subtitles import write_srt

logger = logging.getLogger(__name__)


class TelepaceApp:
    """
    Main telepace application that coordinates all components.
    """

    def __init__(self, config: Config, script_text: str = "") -> None:
        self.config: Config = config
        self.script_text: str = script_text
        self.controller: PlaybackStateMachine | None = None
        self.server: WebServer | None = None
        self.running: bool = False
        self._stopped: asyncio.Event | None = None

    def _voice_supported(self) -> bool:
        transcription = self.config["transcription"]
        return is_voice_supported(
            self.config["voice"]["language"],
            model_id=transcription.get("model_id"),
            model_path=transcription.get("model_path"),
        )

    async def start(self) -> None:
        """Start the controller and web server, then wait for shutdown."""
        loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()
        transcription = self.config["transcription"]

        scheduler = AsyncioScheduler(loop, self.config["timing"]["frame_interval_ms"])
        if self._voice_supported():
            print("Loading speech model...")
            try:
                await loop.run_in_executor(
                    None, preload_model, self.config["voice"]["language"],
                    transcription.get("model_id"), transcription.get("model_path"))
            except CapabilityError as e:
                # Voice mode reports this again when it starts
                logger.warning("Speech model not preloaded: %s", e)
        self.controller = PlaybackStateMachine(
            scheduler,
            self.config,
            session_factory=create_session_factory(
                model_id=transcription.get("model_id"),
                model_path=transcription.get("model_path"),
                device=self.config.get("audio_device"),
                chunk_ms=self.config.get("chunk_ms", 100),
            ),
            is_voice_supported=self._voice_supported,
        )
        self.controller.set_script(
            self.script_text, self.config["playback"]["max_words_per_line"])

        self.server = WebServer(
            self.controller,
            host=self.config["host"],
            port=self.config["port"],
            config=self.config,
        )
        await self.server.start()
        self.running = True

        print("\nTelepace ready!")
        print(f"  Open http://{self.config['host']}:{self.config['port']} in your browser")
        print("  Press Ctrl+C to stop\n")

        await self._stopped.wait()

    def request_stop(self) -> None:
        self.running = False
        if self._stopped is not None:
            self._stopped.set()

    async def stop(self) -> None:
        """Stop the telepace application."""
        self.running = False
        if self.controller:
            self.controller.shutdown()
        if self.server:
            await self.server.stop()
        print("Telepace stopped.")


def build_parser(config: Config) -> argparse.ArgumentParser:
    playback = config["playback"]
    transcription = config["transcription"]

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Telepace - teleprompter pacing with speech following"
    )
    parser.add_argument(
        "script",
        nargs="?",
        type=Path,
        help="Script text file to load"
    )
    parser.add_argument(
        "--mode",
        default=playback["mode"],
        choices=PLAYBACK_MODES,
        help="Playback mode (default: from config or 'continuous')"
    )
    parser.add_argument(
        "--speed", "-s",
        type=float,
        default=playback["scroll_speed"],
        help="Scroll speed in lines per second, 0.1-8 (default: from config or 1.5)"
    )
    parser.add_argument(
        "--rsvp-speed",
        type=int,
        default=playback["rsvp_speed"],
        help="RSVP speed in words per minute, 50-1000 (default: from config or 300)"
    )
    parser.add_argument(
        "--max-words",
        type=int,
        default=playback["max_words_per_line"],
        help="Wrap lines longer than this many words (0 disables wrapping)"
    )
    parser.add_argument(
        "--language",
        default=config["voice"]["language"],
        help="Speech recognition language, e.g. en-US"
    )
    parser.add_argument(
        "--model-id",
        default=transcription.get("model_id"),
        help="Model identifier (e.g., 'vosk-en-us-small'); default picks one for --language"
    )
    parser.add_argument(
        "--model-path",
        default=transcription.get("model_path"),
        help="Path to custom model directory (optional)"
    )
    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 8000),
        help="Web server port (default: from config or 8000)"
    )
    parser.add_argument(
        "--device", "-d",
        type=int,
        default=config.get("audio_device"),
        help="Audio input device index"
    )
    parser.add_argument(
        "--chunk-ms",
        type=int,
        default=config.get("chunk_ms", 100),
        help="Audio chunk size in milliseconds (default: from config or 100)"
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available audio input devices and exit"
    )
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List all available speech models and exit"
    )
    parser.add_argument(
        "--download-model",
        action="store_true",
        help="Download the model for --model-id (or --language) and exit"
    )
    parser.add_argument(
        "--info",
        action="store_true",
        help="Print reading time and words per minute for the script and exit"
    )
    parser.add_argument(
        "--srt",
        type=Path,
        help="Write SubRip subtitles for the script at --speed and exit"
    )
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )
    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable alignment debug logging to ./logs/"
    )
    return parser


def apply_args(config: Config, args: argparse.Namespace) -> Config:
    """Fold CLI options into a config, clamping playback values."""
    config["playback"]["mode"] = args.mode
    config["playback"]["scroll_speed"] = clamp_scroll_speed(args.speed)
    config["playback"]["rsvp_speed"] = clamp_rsvp_speed(args.rsvp_speed)
    config["playback"]["max_words_per_line"] = clamp_max_words_per_line(args.max_words)
    config["voice"]["language"] = args.language
    config["transcription"]["model_id"] = args.model_id
    config["transcription"]["model_path"] = args.model_path
    config["host"] = args.host
    config["port"] = args.port
    config["audio_device"] = args.device
    config["chunk_ms"] = args.chunk_ms
    return config


def print_script_info(text: str, config: Config) -> None:
    speed = config["playback"]["scroll_speed"]
    max_words = config["playback"]["max_words_per_line"]
    minutes, seconds = calculate_duration(text, speed, max_words)
    print(f"Reading time at {speed} lines/s: {minutes}:{seconds:02d}")
    print(f"Approximate pace: {calculate_wpm(text, speed, max_words)} words per minute")
    if is_rtl(text):
        print("Script is right-to-left")


def main() -> None:
    """Main entry point."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    # Load config first to use as defaults
    config: Config = load_config()
    parser = build_parser(config)
    args: argparse.Namespace = parser.parse_args()
    config = apply_args(config, args)

    # Handle special commands
    if args.list_devices:
        list_devices()
        return

    if args.list_models:
        print("\nAvailable speech models:")
        for model in sorted(available_models(), key=lambda m: m.name):
            print(f"  {model.id}")
            print(f"    Name: {model.name}")
            print(f"    Language: {model.language}")
            print(f"    Size: {model.size_mb}MB")
        return

    if args.download_model:
        model_id = args.model_id or model_for_locale(args.language) or DEFAULT_MODEL_ID
        print(f"Downloading model: {model_id}")
        print(f"Model installed to {download_model(model_id)}")
        return

    if args.save_config:
        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    script_text: str = ""
    if args.script is not None:
        try:
            script_text = args.script.read_text(encoding="utf-8")
        except OSError as e:
            parser.error(f"Could not read script {args.script}: {e}")

    if args.info:
        print_script_info(script_text, config)
        return

    if args.srt is not None:
        write_srt(args.srt, script_text, config["playback"]["scroll_speed"],
                  config["playback"]["max_words_per_line"])
        print(f"Subtitles written to {args.srt}")
        return

    if args.debug_log:
        debug_log.enable()
        debug_log.clear_logs()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    app: TelepaceApp = TelepaceApp(config, script_text)

    # Handle shutdown gracefully
    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        loop.call_soon_threadsafe(app.request_stop)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        app.running = False
    finally:
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
