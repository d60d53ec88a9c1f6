#!/usr/bin/env python3
"""Main entry point for BPM BLE Sync.

This module provides the command line front-end that:
1. Pairs with a blood pressure monitor and syncs its clock
2. Waits for the monitor to deliver measurements after measuring
3. Optionally publishes received measurements to an MQTT broker

Usage:
    # Pair (device must be in pairing mode)
    python -m src.main pair --device UA651BLE

    # Wait for measurements
    python -m src.main wait --count 1

    # List monitors advertising the blood pressure service
    python -m src.main scan
"""

from __future__ import annotations

import argparse
import asyncio
import copy
import logging
import sys
from pathlib import Path

import yaml

from src.bpm_ble.client import BPMClient
from src.bpm_ble.devices.base import BLOOD_PRESSURE_SERVICE_UUID
from src.bpm_ble.devices.registry import profile_for
from src.bpm_ble.errors import BPMError, DeviceNotFoundError
from src.bpm_ble.session import SessionNotice
from src.bpm_ble.transport import BleakTransport
from src.models import Measurement
from src.mqtt_publisher import MQTTPublisher

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CONFIG = {
    "device": {
        "kind": "HEM9200T",
        "scan_timeout_seconds": 5,
        "rescan_interval_seconds": 5,
        "scan_duration_seconds": 5,
    },
    "mqtt": {
        "enabled": False,
        "host": "localhost",
        "port": 1883,
        "username": None,
        "password": None,
        "base_topic": "bpm/blood_pressure",
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}


class BPMSyncApp:
    """Wires configuration, the BLE client and the MQTT sink together."""

    def __init__(self, config: dict, transport=None):
        """Initialize the app with configuration.

        Args:
            config: Configuration dictionary
            transport: BLE capability override (bleak when omitted)
        """
        self.config = config
        self.mqtt: MQTTPublisher | None = None

        device_config = config.get("device", {})
        self.profile = profile_for(device_config.get("kind", "HEM9200T"))
        self.client = BPMClient(
            self.profile.id,
            transport,
            scan_timeout=float(device_config.get("scan_timeout_seconds", 5)),
            rescan_interval=float(device_config.get("rescan_interval_seconds", 5)),
            scan_duration=float(device_config.get("scan_duration_seconds", 5)),
            on_notice=self._on_notice,
        )

    def _init_mqtt(self) -> bool:
        """Initialize MQTT publisher and attach it to the measurement store.

        Returns:
            True if connection successful
        """
        mqtt_config = self.config.get("mqtt", {})
        if not mqtt_config.get("enabled", False):
            logger.debug("MQTT publishing disabled in config")
            return False

        self.mqtt = MQTTPublisher(
            host=mqtt_config.get("host", "localhost"),
            port=mqtt_config.get("port", 1883),
            username=mqtt_config.get("username"),
            password=mqtt_config.get("password"),
            base_topic=mqtt_config.get("base_topic", "bpm/blood_pressure"),
            device=self.profile.id.value,
        )

        if self.mqtt.connect():
            self.mqtt.attach(self.client.store)
            self.mqtt.publish_status("online", f"Waiting for {self.profile.name}")
            return True

        logger.error("Failed to connect to MQTT broker")
        self.mqtt = None
        return False

    def _on_notice(self, notice: SessionNotice, message: str) -> None:
        print(message)
        if self.mqtt:
            self.mqtt.publish_notice(notice, message)

    def _on_measurement(self, measurement: Measurement) -> None:
        print(
            f"  {measurement.timestamp:%Y-%m-%d %H:%M:%S} | "
            f"{measurement.systolic}/{measurement.diastolic} mmHg | "
            f"MAP {measurement.mean_arterial_pressure} | "
            f"{measurement.pulse_rate if measurement.pulse_rate is not None else '-'} bpm | "
            f"{measurement.category}"
        )

    async def pair(self) -> int:
        """Pair with the configured monitor.

        Returns:
            Exit code
        """
        self._init_mqtt()
        try:
            peripheral = await self.client.pair()
            logger.info(f"Paired peripheral: {peripheral.id} - {peripheral.name}")
            return 0
        except DeviceNotFoundError as e:
            logger.error(f"{e}")
            return 1
        except BPMError as e:
            logger.error(f"Pairing failed: {e}")
            return 1

    async def wait(self, count: int | None = None) -> int:
        """Wait for measurements from the configured monitor.

        Args:
            count: Stop after this many measurements

        Returns:
            Exit code
        """
        self._init_mqtt()
        print(f"Waiting for measurements from {self.profile.name}... (Ctrl+C to stop)")

        try:
            measurements = await self.client.wait_for_measurements(
                count=count, on_measurement=self._on_measurement
            )
        except BPMError as e:
            logger.error(f"Receiving measurements failed: {e}")
            return 1

        logger.info(f"Received {len(measurements)} measurements")
        return 0

    async def cleanup(self) -> None:
        """Clean up resources."""
        await self.client.close()

        if self.mqtt:
            self.mqtt.detach(self.client.store)
            self.mqtt.publish_status("offline", "Stopped")
            self.mqtt.disconnect()


def load_config(config_path: str | None = None) -> dict:
    """Load configuration from file or use defaults.

    Args:
        config_path: Path to YAML config file

    Returns:
        Configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            user_config = yaml.safe_load(f)
            if user_config and isinstance(user_config, dict):
                # Deep merge user config into defaults
                for section, values in user_config.items():
                    section_config = config.get(section)
                    if (
                        section_config is not None
                        and isinstance(section_config, dict)
                        and isinstance(values, dict)
                    ):
                        section_config.update(values)
                    else:
                        config[section] = values

    return config


def setup_logging(config: dict) -> None:
    """Setup logging based on configuration.

    Args:
        config: Configuration dictionary
    """
    log_config = config.get("logging", {})
    level = getattr(logging, log_config.get("level", "INFO").upper())
    format_str = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = log_config.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=format_str, handlers=handlers)


def apply_device_override(config: dict, device: str | None) -> None:
    """Replace the configured device model with a command line value."""
    if device:
        config["device"]["kind"] = device


async def cmd_pair(args: argparse.Namespace, config: dict) -> int:
    """Handle pair command."""
    apply_device_override(config, args.device)
    app = BPMSyncApp(config)

    print(f"Pairing with {app.profile.name}. Put the device in pairing mode now.")
    try:
        return await app.pair()
    finally:
        await app.cleanup()


async def cmd_wait(args: argparse.Namespace, config: dict) -> int:
    """Handle wait command."""
    apply_device_override(config, args.device)
    app = BPMSyncApp(config)

    try:
        return await app.wait(count=args.count)
    finally:
        await app.cleanup()


async def cmd_scan(args: argparse.Namespace, _config: dict) -> int:
    """Handle scan command."""
    devices = await BleakTransport.discover_monitors([BLOOD_PRESSURE_SERVICE_UUID], args.timeout)

    if not devices:
        print("No blood pressure monitors found.")
        print("Press the Bluetooth button on the device and try again.")
        return 1

    print(f"\n{'Address':<40} {'Name':<30} {'RSSI':>5}")
    print("-" * 77)
    for device, adv_data in devices:
        name = device.name or adv_data.local_name or "(unknown)"
        print(f"{device.address:<40} {name:<30} {adv_data.rssi:>5}")
    print()
    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Blood pressure monitor BLE pairing and measurement receiver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config/config.yaml",
        help="Path to config file (default: config/config.yaml)",
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    pair_parser = subparsers.add_parser("pair", help="Pair with a monitor and sync its clock")
    pair_parser.add_argument(
        "--device",
        type=str,
        help="Device model: UA651BLE or HEM9200T (overrides config)",
    )

    wait_parser = subparsers.add_parser("wait", help="Wait for measurements")
    wait_parser.add_argument(
        "--device",
        type=str,
        help="Device model: UA651BLE or HEM9200T (overrides config)",
    )
    wait_parser.add_argument(
        "--count",
        "-n",
        type=int,
        default=None,
        help="Stop after N measurements (default: run until Ctrl+C)",
    )

    scan_parser = subparsers.add_parser("scan", help="List nearby blood pressure monitors")
    scan_parser.add_argument(
        "--timeout",
        "-t",
        type=float,
        default=10.0,
        help="Scan timeout in seconds (default: 10)",
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = load_config(args.config)

    if args.debug:
        config["logging"]["level"] = "DEBUG"
    setup_logging(config)

    commands = {
        "pair": cmd_pair,
        "wait": cmd_wait,
        "scan": cmd_scan,
    }

    try:
        exit_code = asyncio.run(commands[args.command](args, config))
        sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\nCancelled.")
        sys.exit(130)
    except (BPMError, ValueError) as e:
        logger.error(f"Fatal error: {e}")
        if args.debug:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
