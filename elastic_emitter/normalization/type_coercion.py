import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Optional, Union


class TypeCoercer:
    INTEGER_PATTERN = re.compile(r'^[+-]?\d+$')
    EPOCH_MS_PATTERN = re.compile(r'^\d{10,}$')

    # Tried after datetime.fromisoformat() gives up
    DATETIME_FORMATS = [
        "%Y-%m-%dT%H:%M:%SZ",
        "%Y-%m-%dT%H:%M:%S.%fZ",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d",
        "%Y/%m/%d",
        "%a, %d %b %Y %H:%M:%S GMT",
    ]

    @classmethod
    def string_value(cls, value: Any) -> str:
        if value is None:
            return ""

        if isinstance(value, str):
            return value

        if isinstance(value, bool):
            return "true" if value else "false"

        if isinstance(value, int):
            return str(value)

        if isinstance(value, float):
            if math.isfinite(value) and value.is_integer():
                return str(int(value))
            return repr(value)

        if isinstance(value, (dict, list, tuple)):
            try:
                return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
            except (TypeError, ValueError):
                return ""

        return str(value)

    @classmethod
    def num_value(cls, value: Any) -> Union[int, float]:
        if value is None:
            return 0

        if isinstance(value, bool):
            return 1 if value else 0

        if isinstance(value, int):
            return value

        if isinstance(value, float):
            return value if math.isfinite(value) else 0

        if isinstance(value, str):
            value = value.strip()
            if not value:
                return 0

            if cls.INTEGER_PATTERN.match(value):
                return int(value)

            try:
                number = float(value)
            except ValueError:
                return 0
            if not math.isfinite(number):
                return 0
            if number.is_integer():
                return int(number)
            return number

        return 0

    @classmethod
    def parse_timestamp(cls, value: Any) -> Optional[datetime]:
        """
        Interpret a record timestamp as an aware UTC datetime.

        Accepts datetime objects, epoch milliseconds (numbers or digit strings)
        and ISO-8601 text. Naive values are taken to be UTC. Returns None when
        the value can't be interpreted.
        """
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, datetime):
            return cls._as_utc(value)

        if isinstance(value, (int, float)):
            return cls._from_epoch_ms(value)

        if not isinstance(value, str):
            return None

        value = value.strip()
        if not value:
            return None

        if cls.EPOCH_MS_PATTERN.match(value):
            return cls._from_epoch_ms(int(value))

        iso = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
        try:
            return cls._as_utc(datetime.fromisoformat(iso))
        except ValueError:
            pass

        for fmt in cls.DATETIME_FORMATS:
            try:
                return cls._as_utc(datetime.strptime(value, fmt))
            except ValueError:
                continue
        return None

    @classmethod
    def _as_utc(cls, dt: datetime) -> datetime:
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @classmethod
    def _from_epoch_ms(cls, millis: float) -> Optional[datetime]:
        if isinstance(millis, float) and not math.isfinite(millis):
            return None
        try:
            return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
