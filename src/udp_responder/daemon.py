#!/usr/bin/env python3
"""
Responder Daemon
Starts one PortResponder thread per port in the configured range and decides
what happens when one of them fails

Shutdown policy:
  - default: the first bind or I/O failure is logged and the process exits 1
  - isolate_failures: the failed port is dropped, the others keep serving,
    exit 1 once no port is left
"""

import os
import sys
import queue
import signal
import logging
import argparse
import threading
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple
from prometheus_client import start_http_server

from .config_loader import ConfigLoader, ListenerConfig
from .port_responder import BindError, PortResponder

logger = logging.getLogger(__name__)

FAILURE_BANNER = "Software Failure. Press left mouse button to continue."


def log_failure(error: BaseException):
    """Log a fatal responder failure, Amiga style, with its stack trace"""
    logger.error(f"{FAILURE_BANNER}\nGuru Meditation: {error}", exc_info=error)


class ResponderDaemon:
    """Owns every port responder and the channel their failures arrive on"""

    def __init__(self, config: ListenerConfig,
                 responder_factory: Callable[[int, ListenerConfig], PortResponder] = PortResponder):
        self.config = config
        self.responder_factory = responder_factory
        self.responders: Dict[int, PortResponder] = {}
        self.threads: List[threading.Thread] = []
        self.completions: "queue.Queue[Tuple[int, Optional[BaseException]]]" = queue.Queue()

    def bind_all(self) -> bool:
        """Bind every port in the range, False if serving cannot start"""
        for port in self.config.ports:
            responder = self.responder_factory(port, self.config)
            try:
                responder.bind()
            except BindError as e:
                log_failure(e)
                if not self.config.isolate_failures:
                    return False
                logger.warning(f"Skipping port {port}")
                continue
            self.responders[port] = responder

        if not self.responders:
            logger.error("No port in the range could be bound")
            return False
        return True

    def _serve(self, port: int, responder: PortResponder):
        try:
            responder.run()
        except Exception as e:
            self.completions.put((port, e))
        else:
            self.completions.put((port, None))

    def start(self):
        for port, responder in self.responders.items():
            thread = threading.Thread(
                target=self._serve,
                args=(port, responder),
                name=f"responder-{port}",
                daemon=True
            )
            thread.start()
            self.threads.append(thread)

    def wait(self) -> int:
        """Block until the shutdown policy ends serving, return the exit status"""
        while self.responders:
            port, error = self.completions.get()
            responder = self.responders.pop(port, None)
            if responder is not None:
                responder.close()

            if error is None:
                logger.warning(f"Responder on port {port} returned")
            else:
                log_failure(error)
                if not self.config.isolate_failures:
                    return 1

            logger.warning(f"Port {port} dropped, {len(self.responders)} port(s) still serving")

        logger.error("All responders have stopped")
        return 1

    def shutdown(self):
        for responder in self.responders.values():
            responder.close()
        self.responders.clear()

    def run(self) -> int:
        try:
            if not self.bind_all():
                return 1
            self.start()
            return self.wait()
        finally:
            self.shutdown()


def run_daemon(config: ListenerConfig) -> int:
    """Validate, start metrics and serve; returns the process exit status"""
    if not ConfigLoader.validate(config):
        logger.error("Configuration validation failed")
        return 1

    if config.metrics_port:
        start_http_server(config.metrics_port)
        logger.info(f"Started Prometheus metrics server on port {config.metrics_port}")

    daemon = ResponderDaemon(config)
    try:
        return daemon.run()
    except KeyboardInterrupt:
        logger.info("Shutting down responder")
        return 0


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reply to UDP datagrams with the sender address and UNIX time in binary"
    )
    parser.add_argument("mode", nargs="?", default="",
                        help="pass DEBUG (any case) to log every datagram")
    parser.add_argument("--config", default=os.getenv("CONFIG_PATH"),
                        help="YAML configuration file (default: $CONFIG_PATH, else environment)")
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> ListenerConfig:
    if args.config:
        config = ConfigLoader.load(args.config)
    else:
        config = ConfigLoader.from_env()

    if args.mode.upper() == "DEBUG":
        config = replace(config, debug_enabled=True)
    return config


def _terminate(signum, frame):
    raise KeyboardInterrupt


def main(argv=None):
    """Entry point"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - [%(name)s] %(message)s'
    )
    args = parse_args(argv)

    try:
        config = load_config(args)
    except Exception as e:
        logger.error(f"Configuration loading failed: {e}", exc_info=True)
        sys.exit(1)

    signal.signal(signal.SIGTERM, _terminate)
    sys.exit(run_daemon(config))


if __name__ == "__main__":
    main()
