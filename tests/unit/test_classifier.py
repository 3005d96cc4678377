"""
Unit tests for visitor classification.

Covers:
    - Local/private IP detection and fallback substitution
    - Device cascade order (bot before tablet before mobile before desktop)
    - Browser/OS parsing with "Unknown" defaults
    - Classifier keeps the received IP while geolocating the fallback
"""

import pytest

from linkhop.analytics.classifier import (
    UNKNOWN,
    Classifier,
    classify_device,
    is_local_ip,
    normalize_ip,
    parse_browser_os,
    strip_port,
)
from linkhop.models import DeviceType
from tests.conftest import FALLBACK_IP, FakeGeoProvider

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
SAFARI_IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 13_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/13.0.3 Mobile/15E148 Safari/604.1"
)
ANDROID_PHONE = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)
ANDROID_TABLET = (
    "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
GOOGLEBOT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


@pytest.mark.parametrize(
    "ip,expected",
    [
        ("127.0.0.1", True),
        ("::1", True),
        ("10.0.0.1", True),
        ("192.168.1.5", True),
        ("172.16.4.2", True),
        ("fe80::1", True),
        ("::ffff:10.0.0.1", True),
        ("0.0.0.0", True),
        ("not-an-ip", True),
        ("", True),
        (None, True),
        ("8.8.8.8", False),
        ("81.2.69.142", False),
        ("2001:4860:4860::8888", False),
        ("81.2.69.142:51234", False),
        ("[2001:4860:4860::8888]:443", False),
        ("10.0.0.1:8080", True),
        ("[::1]:80", True),
    ],
)
def test_is_local_ip(ip, expected):
    assert is_local_ip(ip) is expected


def test_normalize_ip():
    assert normalize_ip("10.1.2.3", FALLBACK_IP) == FALLBACK_IP
    assert normalize_ip(None, FALLBACK_IP) == FALLBACK_IP
    assert normalize_ip(" 81.2.69.142 ", FALLBACK_IP) == "81.2.69.142"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("81.2.69.142:51234", "81.2.69.142"),
        ("[2001:4860:4860::8888]:443", "2001:4860:4860::8888"),
        ("[2001:4860:4860::8888]", "2001:4860:4860::8888"),
        ("2001:4860:4860::8888", "2001:4860:4860::8888"),
        ("81.2.69.142", "81.2.69.142"),
    ],
)
def test_forwarded_ip_with_port_geolocates(raw, expected):
    assert strip_port(raw) == expected
    assert normalize_ip(raw, FALLBACK_IP) == expected


@pytest.mark.parametrize(
    "ua,expected",
    [
        (GOOGLEBOT, DeviceType.BOT),
        ("curl/8.4.0", DeviceType.BOT),
        ("python-requests/2.31.0", DeviceType.BOT),
        (SAFARI_IPAD, DeviceType.TABLET),
        (ANDROID_TABLET, DeviceType.TABLET),
        (SAFARI_IPHONE, DeviceType.MOBILE),
        (ANDROID_PHONE, DeviceType.MOBILE),
        (CHROME_WINDOWS, DeviceType.DESKTOP),
        ("zzzz", DeviceType.OTHER),
        ("", DeviceType.OTHER),
        (None, DeviceType.OTHER),
    ],
)
def test_classify_device(ua, expected):
    assert classify_device(ua) is expected


def test_bot_rule_wins_over_mobile():
    ua = SAFARI_IPHONE + " (compatible; AdsBot-Google-Mobile)"
    assert classify_device(ua) is DeviceType.BOT


def test_parse_browser_os_known_agent():
    browser, os_family = parse_browser_os(CHROME_WINDOWS)
    assert browser == "Chrome"
    assert os_family == "Windows"


@pytest.mark.parametrize("ua", [None, "", "zzzz"])
def test_parse_browser_os_unknown(ua):
    assert parse_browser_os(ua) == (UNKNOWN, UNKNOWN)


def test_classifier_uses_fallback_for_private_ip():
    geo = FakeGeoProvider()
    result = Classifier(geo, fallback_ip=FALLBACK_IP).classify("10.0.0.7", CHROME_WINDOWS)

    assert geo.calls == [FALLBACK_IP]
    assert result.ip_address == "10.0.0.7"
    assert (result.country, result.city) == ("United States", "Mountain View")
    assert result.device_type is DeviceType.DESKTOP
    assert result.browser == "Chrome"


def test_classifier_public_ip_looked_up_as_is():
    geo = FakeGeoProvider()
    result = Classifier(geo, fallback_ip=FALLBACK_IP).classify("81.2.69.142", SAFARI_IPHONE)
    assert geo.calls == ["81.2.69.142"]
    assert result.country == "United Kingdom"
    assert result.device_type is DeviceType.MOBILE


def test_classifier_geo_failure_leaves_location_empty():
    geo = FakeGeoProvider(table={})
    result = Classifier(geo, fallback_ip=FALLBACK_IP).classify("1.1.1.1", None)
    assert result.country is None
    assert result.city is None
    assert result.device_type is DeviceType.OTHER
    assert (result.browser, result.os) == (UNKNOWN, UNKNOWN)
