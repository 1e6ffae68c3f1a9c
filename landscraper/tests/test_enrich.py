"""Tests for detail page enrichment."""

import asyncio
import textwrap
from datetime import datetime, timezone

import httpx
from bs4 import BeautifulSoup

from landscraper.enrich import (
    DetailEnricher,
    address_from_breadcrumb,
    address_from_location_element,
    coordinates_from_data_attributes,
    coordinates_from_scripts,
    parse_detail_document,
    posted_date_from_text,
)
from landscraper.fetch import Fetcher
from landscraper.models import DetailInfo, Source

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)

IKMAN_DETAIL = textwrap.dedent(
    """
    <html>
      <body>
        <nav class="breadcrumb--1L5vB">
          <a href="/">Home</a>
          <a href="/en/ads/sri-lanka/land">Land</a>
          <a href="/en/ads/colombo/land">Colombo</a>
          <a href="/en/ads/malabe/land">Malabe</a>
        </nav>
        <h1>10 Perches Land in Malabe</h1>
        <div class="subtitle-wrapper"><span>Posted on 15 Feb 2024, 10:30 am</span></div>
        <iframe src="https://maps.google.com/maps?q=6.9101,79.9702&amp;z=15&amp;output=embed"></iframe>
      </body>
    </html>
    """
)


def _soup(html):
    return BeautifulSoup(textwrap.dedent(html), "lxml")


def test_parse_detail_document_ikman():
    info = parse_detail_document(IKMAN_DETAIL, Source.IKMAN, NOW)
    assert (info.latitude, info.longitude) == (6.9101, 79.9702)
    assert info.posted_date == "2024-02-15"
    assert info.address == "Malabe, Colombo"


def test_parse_detail_document_lankapropertyweb_posted_element():
    html = """
    <div class="property-details">
      <span class="posted-date">12/01/2024</span>
      <a href="https://www.google.com/maps/place/6.87,79.89">Open map</a>
      <div class="address">Nugegoda</div>
    </div>
    """
    info = parse_detail_document(textwrap.dedent(html), Source.LANKAPROPERTYWEB, NOW)
    assert info.posted_date == "2024-01-12"
    assert (info.latitude, info.longitude) == (6.87, 79.89)


def test_parse_detail_document_time_element():
    html = '<div><time datetime="2024-02-01T10:00:00">1 Feb</time></div>'
    assert parse_detail_document(html, Source.IKMAN, NOW).posted_date == "2024-02-01"


def test_parse_detail_document_without_fields():
    info = parse_detail_document("<html><body><p>Nothing here</p></body></html>", Source.IKMAN, NOW)
    assert info == DetailInfo()


def test_posted_date_from_text():
    assert posted_date_from_text("Posted on: 05/11/2023", NOW) == "2023-11-05"
    assert posted_date_from_text("Posted 3 days ago in Land", NOW) == "2024-03-07"
    assert posted_date_from_text("2 weeks ago", NOW) == "2024-02-25"
    assert posted_date_from_text("Posted yesterday", NOW) == "2024-03-09"
    assert posted_date_from_text("Posted today", NOW) == "2024-03-10"
    assert posted_date_from_text("Land for sale", NOW) is None


def test_posted_date_explicit_beats_relative():
    text = "Posted on 1 Mar 2024. Updated 2 hours ago"
    assert posted_date_from_text(text, NOW) == "2024-03-01"


def test_coordinates_from_map_centre_script():
    soup = _soup(
        """
        <script>
          var map = new google.maps.Map(el, {zoom: 15, center: {lat: 6.8412, lng: 79.9654}});
        </script>
        """
    )
    assert coordinates_from_scripts(soup) == (6.8412, 79.9654)


def test_coordinates_from_data_attributes():
    assert coordinates_from_data_attributes(_soup('<div data-lat="7.2906" data-lng="80.6337"></div>')) == (
        7.2906,
        80.6337,
    )
    assert coordinates_from_data_attributes(
        _soup('<div data-latitude="6.05" data-longitude="80.22"></div>')
    ) == (6.05, 80.22)
    assert coordinates_from_data_attributes(_soup('<div data-lat="40.7" data-lng="-74.0"></div>')) is None
    assert coordinates_from_data_attributes(_soup('<div data-lat="" data-lng="80.1"></div>')) is None


def test_out_of_country_map_link_is_ignored():
    html = '<a href="https://www.google.com/maps/place/40.7,-74.0">Map</a>'
    info = parse_detail_document(html, Source.IKMAN, NOW)
    assert info.coordinates is None


def test_address_from_location_element_strips_prefix():
    soup = _soup('<div class="details"><span class="location-text">Location: Athurugiriya, Colombo</span></div>')
    assert address_from_breadcrumb(soup) is None
    assert address_from_location_element(soup) == "Athurugiriya, Colombo"


def test_address_from_location_element_skips_ui_text():
    soup = _soup(
        """
        <div class="location-bar">Login to chat</div>
        <div class="location-bar">Kottawa</div>
        """
    )
    assert address_from_location_element(soup) == "Kottawa"


def _run_enricher(handler, url="https://ikman.lk/en/ad/plot-1"):
    async def run():
        async with Fetcher(transport=httpx.MockTransport(handler)) as fetcher:
            return await DetailEnricher(fetcher, now=lambda: NOW).enrich(url, Source.IKMAN)

    return asyncio.run(run())


def test_enricher_parses_fetched_document():
    info = _run_enricher(lambda request: httpx.Response(200, text=IKMAN_DETAIL))
    assert info.posted_date == "2024-02-15"
    assert info.coordinates == (6.9101, 79.9702)


def test_enricher_returns_empty_info_on_http_status_error():
    assert _run_enricher(lambda request: httpx.Response(404, text="Not found")) == DetailInfo()


def test_enricher_returns_empty_info_on_connection_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert _run_enricher(handler) == DetailInfo()
