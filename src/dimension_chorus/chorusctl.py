#!/usr/bin/env python3
"""
Chorus Control Tool - control a running Dimension Chorus engine over OSC
"""

import argparse
import sys
from pythonosc import udp_client

from .config import OSC_HOST, OSC_PORT
from .mode_table import MAX_MODE_ID


class ChorusCtl:
    def __init__(self, host=OSC_HOST, port=OSC_PORT):
        self.client = udp_client.SimpleUDPClient(host, port)
        self.host = host
        self.port = port

    def mode(self, mode_id):
        """Toggle a mode (0 switches everything off)"""
        print(f"[chorusctl] Toggling mode {mode_id}")
        self.client.send_message("/chorus/mode", [int(mode_id)])

    def off(self):
        """Switch all modes off"""
        print("[chorusctl] Switching chorus off")
        self.client.send_message("/chorus/off", [])

    def status(self):
        """Ask the engine to print its status"""
        print(f"[chorusctl] Requesting status from {self.host}:{self.port}...")
        self.client.send_message("/chorus/status", [])

    def record(self, action, filename=None):
        """Start, stop or query recording"""
        path = f"/record/{action}"
        args = [filename] if (action == "start" and filename) else []
        print(f"[chorusctl] {path} {' '.join(args)}".rstrip())
        self.client.send_message(path, args)


def build_parser():
    parser = argparse.ArgumentParser(description="Dimension Chorus Control Tool")
    parser.add_argument("--host", default=OSC_HOST, help="Engine host")
    parser.add_argument("--port", type=int, default=OSC_PORT, help="Engine OSC port")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    mode_parser = subparsers.add_parser("mode", help="Toggle a mode")
    mode_parser.add_argument("mode_id", type=int, choices=range(0, MAX_MODE_ID + 1),
                             help="Mode id (0 = off)")

    subparsers.add_parser("off", help="Switch all modes off")
    subparsers.add_parser("status", help="Print engine status (on the engine console)")

    record_parser = subparsers.add_parser("record", help="Record the output to WAV")
    record_parser.add_argument("action", choices=["start", "stop", "status"])
    record_parser.add_argument("filename", nargs="?", help="Output file for 'start'")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    ctl = ChorusCtl(args.host, args.port)

    if args.command == "mode":
        ctl.mode(args.mode_id)
    elif args.command == "off":
        ctl.off()
    elif args.command == "status":
        ctl.status()
    elif args.command == "record":
        ctl.record(args.action, args.filename)

    return 0


if __name__ == "__main__":
    sys.exit(main())
