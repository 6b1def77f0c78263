"""
太陽位置の計算（NOAA近似式）
"""
import math
from datetime import datetime, timezone
from typing import Tuple


def _julian_day(when: datetime) -> float:
    """UTC日時からユリウス日を計算"""
    a = (14 - when.month) // 12
    y = when.year + 4800 - a
    m = when.month + 12 * a - 3
    jdn = when.day + (153 * m + 2) // 5 + 365 * y + y // 4 - y // 100 + y // 400 - 32045
    hour_utc = when.hour + when.minute / 60 + when.second / 3600
    return jdn + (hour_utc - 12.0) / 24.0


def solar_position(when: datetime, lat: float, lon: float) -> Tuple[float, float]:
    """
    太陽の高度角と方位角を計算

    Args:
        when: 日時（タイムゾーンなしはUTCとして扱う）
        lat, lon: 観測地点（度）

    Returns:
        (elevation, azimuth) 度。方位角は北から時計回り
    """
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc)

    jc = (_julian_day(when) - 2451545.0) / 36525.0

    # 太陽の平均黄経と平均近点角
    l0 = (280.46646 + jc * (36000.76983 + 0.0003032 * jc)) % 360
    m = (357.52911 + jc * (35999.05029 - 0.0001537 * jc)) % 360
    m_rad = math.radians(m)
    eccentricity = 0.016708634 - jc * (0.000042037 + 0.0000001267 * jc)

    center = (math.sin(m_rad) * (1.914602 - jc * (0.004817 + 0.000014 * jc))
              + math.sin(2 * m_rad) * (0.019993 - 0.000101 * jc)
              + math.sin(3 * m_rad) * 0.000289)

    omega = 125.04 - 1934.136 * jc
    apparent_lon = l0 + center - 0.00569 - 0.00478 * math.sin(math.radians(omega))

    obliq_mean = 23 + (26 + (21.448 - jc * (46.815 + jc * (0.00059 - jc * 0.001813))) / 60) / 60
    obliq_rad = math.radians(obliq_mean + 0.00256 * math.cos(math.radians(omega)))

    declination = math.asin(math.sin(obliq_rad) * math.sin(math.radians(apparent_lon)))

    # 均時差（分）
    y = math.tan(obliq_rad / 2) ** 2
    l0_rad = math.radians(l0)
    eq_time = 4 * math.degrees(
        y * math.sin(2 * l0_rad)
        - 2 * eccentricity * math.sin(m_rad)
        + 4 * eccentricity * y * math.sin(m_rad) * math.cos(2 * l0_rad)
        - 0.5 * y * y * math.sin(4 * l0_rad)
        - 1.25 * eccentricity ** 2 * math.sin(2 * m_rad)
    )

    minutes_utc = when.hour * 60 + when.minute + when.second / 60
    true_solar_time = (minutes_utc + eq_time + 4 * lon) % 1440
    hour_angle = true_solar_time / 4 - 180
    hour_angle_rad = math.radians(hour_angle)

    lat_rad = math.radians(lat)
    sin_elevation = (math.sin(lat_rad) * math.sin(declination)
                     + math.cos(lat_rad) * math.cos(declination) * math.cos(hour_angle_rad))
    elevation = math.degrees(math.asin(max(-1.0, min(1.0, sin_elevation))))

    cos_elevation = math.cos(math.radians(elevation))
    if cos_elevation < 1e-9:
        return elevation, 180.0

    cos_azimuth = (math.sin(declination) - math.sin(lat_rad) * sin_elevation) / (math.cos(lat_rad) * cos_elevation)
    azimuth = math.degrees(math.acos(max(-1.0, min(1.0, cos_azimuth))))
    if hour_angle > 0:
        azimuth = 360 - azimuth

    return elevation, azimuth
