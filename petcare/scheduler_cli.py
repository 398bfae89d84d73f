#!/usr/bin/env python3
"""
Reminder scheduler command line

    petcare-scheduler start    run the interval scan until interrupted
    petcare-scheduler check    run one scan now and print its summary
    petcare-scheduler status   print scheduler status as JSON
"""

import argparse
import json
import time

from petcare import create_app, get_services


def main(argv=None):
    parser = argparse.ArgumentParser(prog='petcare-scheduler', description='PetCare reminder scheduler')
    parser.add_argument('command', choices=['start', 'check', 'status'])
    parser.add_argument('--config', default=None, help='Config object path, e.g. petcare.config.Config')
    args = parser.parse_args(argv)

    app = create_app(args.config, start_scheduler=False)
    scheduler = get_services(app).scheduler

    if args.command == 'start':
        print("Starting reminder scheduler...")
        scheduler.start()

        # Keep running
        try:
            while True:
                time.sleep(60)
        except KeyboardInterrupt:
            print("\nStopping scheduler...")
            scheduler.stop()

    elif args.command == 'check':
        print("Running immediate reminder check...")
        with app.app_context():
            result = scheduler.trigger_immediate_check()
        print(json.dumps(result, indent=2))

    else:
        with app.app_context():
            status = scheduler.get_scheduler_status()
        print(json.dumps(status, indent=2))

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
