import logging
import signal
import time
from dataclasses import dataclass

from alarms.delivery import LocalNotificationService, NotificationPayload
from alarms.registry import AlarmRegistry
from alarms.sounds import AlarmSoundPlayer
from alarms.storage import JsonFileStore
from config import Config, load_config, setup_logging
from time_utils import format_next_ring, format_tz_offset, make_clock, resolve_timezone

logger = logging.getLogger("smart_alarm")


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


@dataclass
class AlarmRuntime:
    config: Config
    registry: AlarmRegistry
    delivery: LocalNotificationService
    sound_player: AlarmSoundPlayer

    def on_notification(self, payload: NotificationPayload) -> None:
        logger.info("Alarm %s ringing: %s", payload.alarm_id, payload.body)
        self.sound_player.start_loop(payload.sound_ref)

    def start(self) -> None:
        # handler goes in before load so re-armed alarms never fire unhandled
        self.delivery.install_handler(self.on_notification)
        alarms = self.registry.load()
        self.delivery.start()
        now = self.registry.now()
        logger.info("Loaded %s alarms (tz offset %s)", len(alarms), format_tz_offset(now.tzinfo))
        next_ring = self.registry.next_alarm_time(now)
        if next_ring:
            logger.info("Next alarm: %s", format_next_ring(next_ring, now))

    def stop_ringing(self) -> None:
        self.sound_player.stop_loop()
        logger.info("Alarm dismissed")

    def shutdown(self) -> None:
        self.delivery.shutdown()
        self.sound_player.stop_loop()


def build_runtime(config: Config) -> AlarmRuntime:
    tz = resolve_timezone(config.timezone_name)
    delivery = LocalNotificationService(check_interval=config.check_interval_ms / 1000.0)
    registry = AlarmRegistry(
        store=JsonFileStore(config.alarms_path),
        delivery=delivery,
        clock=make_clock(tz),
        storage_key=config.storage_key,
        rearm_on_load=config.rearm_on_load,
    )
    return AlarmRuntime(
        config=config,
        registry=registry,
        delivery=delivery,
        sound_player=AlarmSoundPlayer(config.fallback_sound_path),
    )


def main() -> None:
    config = load_config()
    setup_logging(config.log_level)
    signal.signal(signal.SIGINT, graceful_exit)
    logger.info("Starting smart alarm (storage=%s)", config.alarms_path)

    runtime = build_runtime(config)
    runtime.start()
    try:
        while True:
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        runtime.shutdown()


if __name__ == "__main__":
    main()
