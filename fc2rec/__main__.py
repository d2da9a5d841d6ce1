import argparse
import asyncio
import signal
import sys

from .config import get_env
from .fc2 import Params
from .fc2.params import DEFAULT_OUT_FORMAT
from .utils import error_dict, log, parse_duration


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fc2rec", description="Record FC2 live streams")
    commands = parser.add_subparsers(dest="command", required=True)

    dl = commands.add_parser("download", help="Record one channel")
    dl.add_argument("channel_id")
    dl.add_argument("--quality", default="3Mbps", help="150Kbps, 400Kbps, 1.2Mbps, 2Mbps, 3Mbps or sound")
    dl.add_argument("--latency", default="mid", help="low, high or mid")
    dl.add_argument("--format", dest="out_format", default=DEFAULT_OUT_FORMAT,
                    help="Template fields: {ChannelID}, {ChannelName}, {Date}, {Time}, {Title}, {Ext}, {Labels.Key}")
    dl.add_argument("--max-packet-loss", type=int, default=20)
    dl.add_argument("--no-remux", action="store_true")
    dl.add_argument("--remux-format", default="mp4")
    dl.add_argument("--concat", action="store_true")
    dl.add_argument("-k", "--keep-intermediates", action="store_true")
    dl.add_argument("-x", "--extract-audio", action="store_true")
    dl.add_argument("--no-delete-corrupted", action="store_true")
    dl.add_argument("--scan-directory", default="")
    dl.add_argument("--eligible-for-cleaning-age", default="48h")
    dl.add_argument("--cookies-file", default="")
    dl.add_argument("--write-chat", action="store_true")
    dl.add_argument("--write-info-json", action="store_true")
    dl.add_argument("--write-thumbnail", action="store_true")
    dl.add_argument("--wait-for-quality-max-tries", type=int, default=60)
    dl.add_argument("--allow-quality-upgrade", action="store_true")
    dl.add_argument("--poll-quality-upgrade-interval", default="10s")
    dl.add_argument("--no-wait", action="store_true", help="Do not wait for the stream to go online")
    dl.add_argument("--poll-interval", default="5s")
    dl.add_argument("--max-tries", type=int, default=10)
    dl.add_argument("--loop", action="store_true", help="Record forever")

    watch = commands.add_parser("watch", help="Record every channel of a config file")
    watch.add_argument("-c", "--config", default=None)
    watch.add_argument("--no-server", action="store_true")

    clean = commands.add_parser("clean", help="Remove intermediates of concatenated recordings")
    clean.add_argument("path")
    clean.add_argument("--eligible-for-cleaning-age", default="48h")
    clean.add_argument("--dry-run", action="store_true")

    remux = commands.add_parser("remux", help="Remux a recording")
    remux.add_argument("file")
    remux.add_argument("--format", dest="remux_format", default="mp4")
    remux.add_argument("--audio-only", action="store_true")

    concat = commands.add_parser("concat", help="Concatenate recordings")
    concat.add_argument("output")
    concat.add_argument("files", nargs="+")

    return parser


def params_from_args(args: argparse.Namespace) -> Params:
    return Params(
        quality=args.quality,
        latency=args.latency,
        out_format=args.out_format,
        packet_loss_max=args.max_packet_loss,
        remux=not args.no_remux,
        remux_format=args.remux_format,
        concat=args.concat,
        keep_intermediates=args.keep_intermediates,
        extract_audio=args.extract_audio,
        delete_corrupted=not args.no_delete_corrupted,
        scan_directory=args.scan_directory,
        eligible_for_cleaning_age_sec=args.eligible_for_cleaning_age,
        cookies_file=args.cookies_file,
        write_chat=args.write_chat,
        write_info_json=args.write_info_json,
        write_thumbnail=args.write_thumbnail,
        wait_for_quality_max_tries=args.wait_for_quality_max_tries,
        allow_quality_upgrade=args.allow_quality_upgrade,
        poll_quality_upgrade_interval_sec=args.poll_quality_upgrade_interval,
        wait_for_live=not args.no_wait,
        wait_poll_interval_sec=args.poll_interval,
    )


async def run_command(args: argparse.Namespace):
    env = get_env()
    if args.command == "download":
        from .app import DownloadRunner

        runner = DownloadRunner(args.channel_id, params_from_args(args), max_tries=args.max_tries, loop=args.loop)
        await runner.run()
    elif args.command == "watch":
        from .app import WatchRunner

        config_path = args.config if args.config is not None else env.config_path
        if config_path is None:
            raise ValueError("Config path not set")
        runner = WatchRunner(config_path, env.listen_host, env.listen_port, serve_status=not args.no_server)
        await runner.run()
    elif args.command == "clean":
        from .postprocess import clean

        await asyncio.to_thread(clean, args.path, parse_duration(args.eligible_for_cleaning_age), args.dry_run)
    elif args.command == "remux":
        from .fc2 import remove_ext
        from .postprocess import remux

        base, _ = remove_ext(args.file)
        ext = "m4a" if args.audio_only else args.remux_format
        await remux(args.file, f"{base}.{ext}", audio_only=args.audio_only)
    elif args.command == "concat":
        from .postprocess import concat

        await concat(args.output, args.files)


async def run_main(args: argparse.Namespace) -> int:
    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, task.cancel)
    try:
        await run_command(args)
        return 0
    except asyncio.CancelledError:
        log.info("Canceled by the operator")
        return 0
    except Exception as ex:
        log.error("Command failed", error_dict(ex))
        return 1
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


def main():
    args = build_parser().parse_args()
    log.set_level(get_env().log_level)
    sys.exit(asyncio.run(run_main(args)))


if __name__ == "__main__":
    main()
