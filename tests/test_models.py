import json
import unittest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from kalendarus.errors import ConfigError
from kalendarus.models import (
    AppConfig,
    CachedEvent,
    TelegramConfig,
    format_duration,
    parse_duration,
)


class ParseDurationTests(unittest.TestCase):
    def test_parses_go_style_durations(self) -> None:
        self.assertEqual(parse_duration("10m"), timedelta(minutes=10))
        self.assertEqual(parse_duration("1h30m"), timedelta(hours=1, minutes=30))
        self.assertEqual(parse_duration("1.5h"), timedelta(minutes=90))
        self.assertEqual(parse_duration("45s"), timedelta(seconds=45))
        self.assertEqual(parse_duration("0"), timedelta(0))

    def test_rejects_malformed_durations(self) -> None:
        for raw in ["", "10", "m", "10 minutes", "1h 30m", "5d"]:
            with self.subTest(raw=raw):
                with self.assertRaises(ValueError):
                    parse_duration(raw)

    def test_format_duration(self) -> None:
        self.assertEqual(format_duration(timedelta(hours=1, minutes=30)), "1h30m")
        self.assertEqual(format_duration(timedelta(0)), "0s")


class AppConfigTests(unittest.TestCase):
    def test_thresholds_sorted_by_lead_time(self) -> None:
        cfg = AppConfig.from_dict(
            {
                "notification": {
                    "hour": {"before_start": "1h"},
                    "ten": {"before_start": "10m"},
                    "also-ten": "10m",
                    "": {"before_start": "1m"},
                }
            }
        )
        self.assertEqual([t.id for t in cfg.thresholds()], ["also-ten", "ten", "hour"])

    def test_invalid_threshold_is_config_error(self) -> None:
        cfg = AppConfig.from_dict({"calendar_url": "https://x", "notification": {"bad": {"before_start": "soon"}}})
        with self.assertRaises(ConfigError):
            cfg.validate()

    def test_validate_requires_calendar_url(self) -> None:
        with self.assertRaises(ConfigError):
            AppConfig.from_dict({}).validate()

    def test_validate_rejects_unknown_timezone(self) -> None:
        cfg = AppConfig.from_dict({"calendar_url": "https://x", "timezone": "Mars/Olympus"})
        with self.assertRaises(ConfigError):
            cfg.validate()

    def test_validate_rejects_broken_template(self) -> None:
        cfg = AppConfig.from_dict({"calendar_url": "https://x", "notify_template": "{when}"})
        with self.assertRaises(ConfigError):
            cfg.validate()

    def test_defaults_and_clamping(self) -> None:
        cfg = AppConfig.from_dict({"pull_interval": 0, "cache_retention_hours": -5})
        self.assertEqual(cfg.pull_interval, 1)
        self.assertEqual(cfg.notify_interval, 600)
        self.assertEqual(cfg.cache_retention_hours, 0)
        self.assertEqual(cfg.timezone, "Asia/Yekaterinburg")


class TelegramConfigTests(unittest.TestCase):
    def test_enabled_requires_token(self) -> None:
        with self.assertRaises(ConfigError):
            TelegramConfig.from_dict({"enabled": True}).validate()

    def test_invalid_parse_mode(self) -> None:
        with self.assertRaises(ConfigError):
            TelegramConfig.from_dict({"parse_mode": "BBCode"}).validate()

    def test_accepts_dashed_keys(self) -> None:
        cfg = TelegramConfig.from_dict({"chat-id": "42", "parse-mode": "HTML", "disable-notification": True})
        self.assertEqual(cfg.chat_id, "42")
        self.assertEqual(cfg.parse_mode, "HTML")
        self.assertTrue(cfg.disable_notification)


class CachedEventTests(unittest.TestCase):
    def test_dict_round_trip_through_json(self) -> None:
        start = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
        local = ZoneInfo("Asia/Yekaterinburg")
        event = CachedEvent(
            summary="Planning",
            location="HQ",
            description="Quarterly",
            start_time=start,
            start_time_local=start.astimezone(local),
            end_time=None,
            end_time_local=None,
            modified_time=start - timedelta(days=2),
            modified_time_local=(start - timedelta(days=2)).astimezone(local),
            notificators={"1h": True},
        )
        restored = CachedEvent.from_dict(json.loads(json.dumps(event.to_dict())))
        self.assertEqual(restored, event)
        self.assertEqual(restored.start_time_local.utcoffset(), timedelta(hours=5))


if __name__ == "__main__":
    unittest.main()
