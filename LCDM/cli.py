# LCDM/cli.py
import argparse
import sys

from kiosk_config import KioskConfig
from .lcdm_core import LcdmDispenser
from .lcdm_decode import SensorStatus, describe_cashbox
from .lcdm_errors import LcdmError


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lcdm-cli", description="Talk to an LCDM bill dispenser.")
    p.add_argument("--config", default="config.json", help="path to config.json")
    p.add_argument("--port", help="serial port, overrides lcdm.port_name")
    p.add_argument("--baud", type=int, choices=LcdmDispenser.SUPPORTED_BAUD_RATES,
                   help="baud rate, overrides lcdm.baud_rate")
    p.add_argument("-v", "--verbose", action="store_true", help="trace frames on the wire")

    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="sensor snapshot")
    sub.add_parser("reset", help="reset / purge the mechanism")
    sub.add_parser("version", help="model code and firmware version")
    up = sub.add_parser("upper", help="dispense from the upper cassette")
    up.add_argument("count", type=int)
    low = sub.add_parser("lower", help="dispense from the lower cassette")
    low.add_argument("count", type=int)
    both = sub.add_parser("dispense", help="dispense from both cassettes")
    both.add_argument("upper", type=int)
    both.add_argument("lower", type=int)
    return p


def _print_status(st) -> None:
    print(f"[STATUS] 0x{st.status_code:02X} {st.description}")
    for name in SensorStatus.__dataclass_fields__:
        print(f"  {name:<16} {getattr(st.sensors, name)}")


def _print_dispense(res) -> None:
    print(f"[DISPENSE] 0x{res.status_code:02X} {res.description}, cashbox: {describe_cashbox(res.cashbox_status)}")
    if hasattr(res, "check_count"):
        print(f"  checked {res.check_count}, exited {res.exit_count}")
    else:
        print(f"  upper: checked {res.upper_check_count}, exited {res.upper_exit_count}")
        print(f"  lower: checked {res.lower_check_count}, exited {res.lower_exit_count}")


def run(args, dispenser: LcdmDispenser) -> int:
    with dispenser:
        if args.command == "status":
            _print_status(dispenser.status())
        elif args.command == "reset":
            dispenser.reset()
            print("[RESET] OK")
        elif args.command == "version":
            v = dispenser.rom_version()
            print(f"[VERSION] model {v.model}, firmware {v.version}")
        elif args.command == "upper":
            _print_dispense(dispenser.upper_dispense(args.count))
        elif args.command == "lower":
            _print_dispense(dispenser.lower_dispense(args.count))
        elif args.command == "dispense":
            _print_dispense(dispenser.dispense(args.upper, args.lower))
    return 0


def main(argv=None):
    args = _build_parser().parse_args(argv)
    cfg = KioskConfig(args.config)

    overrides = {"port": args.port, "baud": args.baud}
    if args.verbose:
        overrides["verbose"] = True
    dispenser = LcdmDispenser.from_config(cfg, **overrides)
    dispenser.on_status = lambda s: print("[STATUS]", s)

    try:
        rc = run(args, dispenser)
    except LcdmError as e:
        print(f"[ERROR] {type(e).__name__}: {e}")
        rc = 1
    except ValueError as e:
        print(f"[ERROR] {e}")
        rc = 1
    sys.exit(rc)


if __name__ == "__main__":
    main()
