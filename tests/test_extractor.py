# tests/test_extractor.py
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from partsradar.extractor import (
    PRICE_UNDEFINED,
    ExtractionError,
    extract_listing,
    extract_location,
    extract_price,
    listing_hash,
)

URL = "https://pc.bazos.cz/inzerat/123456789/msi-rtx-3060-ti.php"
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

DETAIL = """
<html><head><meta property="og:image" content="https://www.bazos.cz/img/1/789/123456789.jpg"></head>
<body>
<h1 class="nadpisdetail">MSI GeForce RTX 3060 Ti Gaming X 8GB</h1>
<span class="velikost10"> - TOP - [5.3. 2025]</span>
<div class="popisdetail">Prodám grafickou kartu, plně funkční, s původní krabicí.</div>
<table>
<tr><td>Jméno:</td><td>Petr Novák</td></tr>
<tr><td>Telefon:</td><td>777 123 456</td></tr>
<tr><td>Lokalita:</td><td>Praha 110 00</td></tr>
<tr><td>Vidělo:</td><td>152 lidí</td></tr>
<tr><td>Cena:</td><td>{price}</td></tr>
</table>
</body></html>
"""


def page(price="5 500 Kč"):
    return DETAIL.format(price=price)


def test_extracts_all_fields():
    raw = extract_listing(page(), URL, "GPU", now=NOW)

    assert raw.external_id == "123456789"
    assert raw.title == "MSI GeForce RTX 3060 Ti Gaming X 8GB"
    assert raw.price == Decimal("5500")
    assert raw.price_undefined is False
    assert raw.currency == "CZK"
    assert raw.marketplace == "bazos"
    assert raw.part_type == "GPU"
    assert raw.seller_name == "Petr Novák"
    assert raw.phone == "777 123 456"
    assert raw.location == "Praha 110 00"
    assert raw.view_count == 152
    assert raw.is_promoted is True
    assert raw.posted_at == datetime(2025, 3, 5, tzinfo=timezone.utc)
    assert raw.image_url == "https://www.bazos.cz/img/1/789/123456789.jpg"
    assert raw.description.startswith("Prodám grafickou kartu")
    assert raw.unique_hash == listing_hash("bazos", "123456789", raw.title, Decimal("5500"))


def test_price_variants():
    assert extract_price("Cena: 5000 Kč") == Decimal("5000")
    assert extract_price("Cena: 12 500,-") == Decimal("12500")
    assert extract_price("Cena: v textu") is PRICE_UNDEFINED
    assert extract_price("Cena: dohodou") is PRICE_UNDEFINED
    assert extract_price("nothing useful here") is None


def test_dash_before_price_is_a_separator():
    assert extract_price("Prodám RTX 3060 - 5000 Kč") == Decimal("5000")
    assert extract_price("RTX 3060\n-\n5 000 Kč") == Decimal("5000")
    assert extract_price("Cena: -100") == Decimal("-100")


def test_title_with_dashed_price_is_kept():
    html = "<html><body><h1>RTX 3060 - 5000 Kč</h1><p>Lokalita: Brno 602 00</p></body></html>"
    raw = extract_listing(html, URL, "GPU", now=NOW)
    assert raw.price == Decimal("5000")


def test_price_in_text_is_stored_as_undefined():
    raw = extract_listing(page("v textu"), URL, "GPU", now=NOW)

    assert raw.price is None
    assert raw.price_undefined is True
    assert raw.unique_hash == listing_hash("bazos", "123456789", raw.title, PRICE_UNDEFINED)
    assert raw.unique_hash != listing_hash("bazos", "123456789", raw.title, None)


@pytest.mark.parametrize("price", ["-100 Kč", "0 Kč"])
def test_non_positive_price_is_rejected(price):
    with pytest.raises(ExtractionError):
        extract_listing(page(price), URL, "GPU", now=NOW)


def test_missing_id_is_rejected():
    with pytest.raises(ExtractionError):
        extract_listing(page(), "https://pc.bazos.cz/graficka/", "GPU", now=NOW)


def test_missing_title_is_rejected():
    html = "<html><body><p>Cena: 500 Kč</p><p>Lokalita: Brno 602 00</p></body></html>"
    with pytest.raises(ExtractionError):
        extract_listing(html, URL, "GPU", now=NOW)


def test_title_falls_back_to_keyword_line():
    html = "<html><body><p>Prodám Intel Core i5 12400F procesor</p><p>Cena: 2 000 Kč</p></body></html>"
    raw = extract_listing(html, URL, "CPU", now=NOW)
    assert raw.title == "Prodám Intel Core i5 12400F procesor"


def test_missing_date_defaults_to_now():
    html = page().replace("[5.3. 2025]", "")
    raw = extract_listing(html, URL, "GPU", now=NOW)
    assert raw.posted_at == NOW


def test_long_title_is_truncated_before_hashing():
    title = "RTX 3080 " + "x" * 600
    html = page().replace("MSI GeForce RTX 3060 Ti Gaming X 8GB", title)
    raw = extract_listing(html, URL, "GPU", now=NOW)

    assert len(raw.title) == 500
    assert raw.unique_hash == listing_hash("bazos", "123456789", raw.title, Decimal("5500"))


def test_location_accepts_both_orders():
    assert extract_location("Lokalita:\nBrno 602 00") == "Brno 602 00"
    assert extract_location("Lokalita:\n110 00 Praha") == "Praha 110 00"
    assert extract_location("no location here") is None


def test_hash_is_deterministic_and_field_sensitive():
    h = listing_hash("bazos", "1", "RTX 3060", Decimal("5000"))
    assert h == listing_hash("bazos", "1", "RTX 3060", Decimal("5000"))
    assert len(h) == 64
    assert h != listing_hash("bazos", "1", "RTX 3060", Decimal("5001"))
    assert h != listing_hash("bazos", "2", "RTX 3060", Decimal("5000"))
    assert h != listing_hash("bazos", "1", "RTX 3070", Decimal("5000"))
