"""DepthStream command-line interface."""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from depthstream.core.config import DepthStreamConfig, get_default_config
from depthstream.core.errors import DepthStreamError
from depthstream.core.observers import ProgressObserver, RecordingObserver, SessionObserver
from depthstream.core.schema import SessionConfig
from depthstream.utils.log_setup import configure_logging

logger = logging.getLogger(__name__)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="DepthStream - Synchronized RGB-D Dataset Recorder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    def add_config_arg(sub):
        sub.add_argument(
            "--config", "-c",
            type=str,
            default=None,
            help="Path to configuration file",
        )

    # Record command
    record_parser = subparsers.add_parser("record", help="Record one dataset")
    add_config_arg(record_parser)
    record_parser.add_argument(
        "--frames", "-n",
        type=int,
        default=None,
        help="Number of frames to record (default: last used)",
    )
    record_parser.add_argument(
        "--delay", "-d",
        type=int,
        default=None,
        help="Minimum delay between recorded frames in ms (default: last used)",
    )
    record_parser.add_argument(
        "--prefix",
        type=str,
        default=None,
        help="Dataset name prefix",
    )
    record_parser.add_argument(
        "--synthetic",
        action="store_true",
        help="Use the generated sensor instead of a RealSense device",
    )
    record_parser.add_argument(
        "--no-server",
        action="store_true",
        help="Do not start the export server while recording",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the export server")
    add_config_arg(serve_parser)
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config)",
    )
    serve_parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: from config)",
    )

    # Clear command
    clear_parser = subparsers.add_parser("clear", help="Delete recorded data")
    add_config_arg(clear_parser)
    clear_parser.add_argument(
        "--all",
        action="store_true",
        help="Delete the whole data root, sealed datasets included",
    )

    # Datasets command
    datasets_parser = subparsers.add_parser("datasets", help="List and verify sealed datasets")
    add_config_arg(datasets_parser)

    # Check hardware command
    subparsers.add_parser("check-hardware", help="Check hardware status")

    # Version command
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.command == "record":
        return cmd_record(args)
    elif args.command == "serve":
        return cmd_serve(args)
    elif args.command == "clear":
        return cmd_clear(args)
    elif args.command == "datasets":
        return cmd_datasets(args)
    elif args.command == "check-hardware":
        return cmd_check_hardware(args)
    elif args.command == "version":
        return cmd_version(args)
    else:
        parser.print_help()
        return 0


def load_config(path: Optional[str]) -> DepthStreamConfig:
    """Load the configuration file, falling back to defaults if none exists."""
    if path is not None:
        return DepthStreamConfig.load(path)
    try:
        return DepthStreamConfig.load()
    except FileNotFoundError:
        return get_default_config()


def _prepare(args) -> Optional[DepthStreamConfig]:
    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return None

    configure_logging(config.logging, config.base_dir)

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Config error: {error}")
        return None
    return config


class ConsoleObserver(RecordingObserver, ProgressObserver, SessionObserver):
    """Prints recording and export events to stdout."""

    def __init__(self, total_frames: int = 0):
        self.total_frames = total_frames

    def on_frame_admitted(self, count: int) -> None:
        print(f"  Captured {count}/{self.total_frames}")

    def on_capture_complete(self, dataset) -> None:
        if dataset is not None:
            print(f"Dataset saved: {dataset.path}")

    def on_recording_stopped(self, frames_captured: int) -> None:
        print(f"Recording stopped after {frames_captured} frames")

    def on_session_failed(self, status: str, message: str) -> None:
        print(f"Sensor error ({status}): {message}")

    def on_compression_started(self) -> None:
        print("Compressing data for download...")

    def on_progress(self, fraction: float) -> None:
        print(f"  Compressed {int(fraction * 100)}%")

    def on_error(self, message: str) -> None:
        print(f"Error: {message}")


def cmd_record(args):
    """Record one dataset."""
    from depthstream.capture import SessionStatus
    from depthstream.controller import StreamController

    config = _prepare(args)
    if config is None:
        return 1
    if args.synthetic:
        config.sensor.backend = "synthetic"
    if args.no_server:
        config.server.enabled = False

    observer = ConsoleObserver()
    try:
        controller = StreamController(
            config,
            recording_observer=observer,
            progress_observer=observer,
            session_observer=observer,
            prefix=args.prefix,
        )
    except DepthStreamError as e:
        print(f"Error: {e}")
        return 1

    with controller:
        status = controller.start()
        if status != SessionStatus.READY:
            return 1
        print(f"Server: {controller.server_status}")

        last = controller.recorder.session_config
        try:
            session_config = SessionConfig(
                requested_frame_count=args.frames if args.frames is not None else last.requested_frame_count,
                min_inter_frame_delay_ms=args.delay if args.delay is not None else last.min_inter_frame_delay_ms,
            )
        except ValueError as e:
            print(f"Error: {e}")
            return 1
        observer.total_frames = session_config.requested_frame_count

        print(
            f"Recording {session_config.requested_frame_count} frames, "
            f"{session_config.min_inter_frame_delay_ms} ms apart (Ctrl+C to stop)"
        )
        try:
            controller.start_recording(session_config)
            controller.recorder.wait_idle()
        except KeyboardInterrupt:
            controller.stop_recording().result()
            return 0
        except DepthStreamError as e:
            print(f"Error: {e}")
            return 1

        dataset = controller.recorder.last_dataset
        return 0 if dataset is not None else 1


def cmd_serve(args):
    """Run the export server until interrupted."""
    from depthstream.export import ExportServer, create_app
    from depthstream.persistence import DatasetManager, PreferenceStore

    config = _prepare(args)
    if config is None:
        return 1
    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port

    observer = ConsoleObserver()
    with PreferenceStore(config.storage.get_preferences_path(config.base_dir)) as prefs:
        manager = DatasetManager.from_config(config.storage, prefs, config.base_dir)
        manager.data_root.mkdir(parents=True, exist_ok=True)

        server = ExportServer.from_config(
            create_app(manager, observer=observer, progress_interval_s=config.server.progress_interval_s),
            config.server,
        )
        if not server.start():
            print(f"Error: {server.error}")
            return 1

        print(f"Serving {manager.data_root}")
        print(f"Server: {server.status}")
        print("Press Ctrl+C to stop")
        try:
            while server.running:
                time.sleep(0.5)
        except KeyboardInterrupt:
            pass
        finally:
            server.stop()
    return 0


def cmd_clear(args):
    """Delete the scratch dataset or the whole data root."""
    from depthstream.persistence import DatasetManager, PreferenceStore

    config = _prepare(args)
    if config is None:
        return 1

    with PreferenceStore(config.storage.get_preferences_path(config.base_dir)) as prefs:
        manager = DatasetManager.from_config(config.storage, prefs, config.base_dir)
        manager.clear(include_app_data=args.all)
        print(f"Cleared {manager.data_root if args.all else manager.scratch_directory}")
    return 0


def cmd_datasets(args):
    """List sealed datasets and verify their contents."""
    from depthstream.persistence import DatasetManager, PreferenceStore

    config = _prepare(args)
    if config is None:
        return 1

    with PreferenceStore(config.storage.get_preferences_path(config.base_dir)) as prefs:
        manager = DatasetManager.from_config(config.storage, prefs, config.base_dir)
        datasets = manager.list_datasets()
        if not datasets:
            print(f"No datasets under {manager.data_root}")
            return 0

        exit_code = 0
        for path in datasets:
            report = manager.verify(path)
            state = "ok" if report.consistent else "INCONSISTENT"
            print(
                f"{path.name}: {report.frame_count} frames "
                f"(depth {report.depth_images}, rgb {report.color_images}, "
                f"records {report.depth_records}/{report.camera_records}) [{state}]"
            )
            if not report.consistent:
                exit_code = 2
    return exit_code


def cmd_check_hardware(args):
    """Check hardware status."""
    print("=" * 50)
    print("DepthStream Hardware Check")
    print("=" * 50)

    # Check RealSense
    print("\n[Intel RealSense Camera]")
    from depthstream.capture import is_realsense_available, list_realsense_devices
    if not is_realsense_available():
        print("  Status: NOT INSTALLED (pyrealsense2 not found)")
    else:
        try:
            devices = list_realsense_devices()
        except RuntimeError as e:
            print(f"  Status: ERROR ({e})")
        else:
            if devices:
                print(f"  Status: AVAILABLE ({len(devices)} device(s))")
                for i, dev in enumerate(devices):
                    print(f"  Device {i}: {dev['name']}")
                    print(f"    Serial: {dev['serial']}")
                    print(f"    Firmware: {dev['firmware']}")
                    if "usb_type" in dev:
                        print(f"    USB: {dev['usb_type']}")
            else:
                print("  Status: NO DEVICES FOUND")

    # Check network
    print("\n[Network]")
    from depthstream.export import local_ip_address
    address = local_ip_address()
    print(f"  Address: {address}" if address else "  Not connected")

    # Check system resources
    print("\n[System Resources]")
    import psutil
    mem = psutil.virtual_memory()
    disk = psutil.disk_usage(str(Path.cwd()))
    print(f"  Memory: {mem.available / (1024**3):.1f}GB available / {mem.total / (1024**3):.1f}GB total")
    print(f"  Disk: {disk.free / (1024**3):.1f}GB free / {disk.total / (1024**3):.1f}GB total")
    print(f"  CPU: {psutil.cpu_count()} cores")

    print("\n" + "=" * 50)
    return 0


def cmd_version(args):
    """Show version."""
    from importlib.metadata import PackageNotFoundError, version
    try:
        v = version("depthstream")
    except PackageNotFoundError:
        from depthstream import __version__ as v

    print(f"DepthStream v{v}")
    print("Synchronized RGB-D Dataset Recorder")
    return 0


if __name__ == "__main__":
    sys.exit(main())
