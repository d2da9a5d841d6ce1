from enum import IntEnum


class Quality(IntEnum):
    UNKNOWN = 0
    KBPS_150 = 10
    KBPS_400 = 20
    MBPS_1_2 = 30
    MBPS_2 = 40
    MBPS_3 = 50
    SOUND = 90

    def __str__(self):
        return QUALITY_NAMES[self]

    @staticmethod
    def parse(value: str) -> "Quality":
        for quality, name in QUALITY_NAMES.items():
            if name.lower() == value.strip().lower():
                return quality
        return Quality.UNKNOWN

    @staticmethod
    def from_mode(mode: int) -> "Quality":
        value = (mode // 10) * 10
        try:
            quality = Quality(value)
        except ValueError:
            return Quality.UNKNOWN
        return quality


QUALITY_NAMES = {
    Quality.UNKNOWN: "unknown",
    Quality.KBPS_150: "150Kbps",
    Quality.KBPS_400: "400Kbps",
    Quality.MBPS_1_2: "1.2Mbps",
    Quality.MBPS_2: "2Mbps",
    Quality.MBPS_3: "3Mbps",
    Quality.SOUND: "sound",
}


class Latency(IntEnum):
    UNKNOWN = 0
    LOW = 1
    HIGH = 2
    MID = 3

    def __str__(self):
        return self.name.lower()

    @staticmethod
    def parse(value: str) -> "Latency":
        try:
            return Latency[value.strip().upper()]
        except KeyError:
            return Latency.UNKNOWN

    @staticmethod
    def from_mode(mode: int) -> "Latency":
        value = mode % 10 + 1
        if value > Latency.MID:
            return Latency.UNKNOWN
        return Latency(value)


def to_mode(quality: Quality, latency: Latency) -> int:
    return int(quality) + int(latency) - 1
