import pytest

from benetrip.services.redirect_links import apply_parameter_changes, partner_domain


@pytest.mark.parametrize(
    "url, domain",
    [
        ("https://www.partner.com/book?x=1", "partner.com"),
        ("http://tickets.example.org", "tickets.example.org"),
        ("not a url", "unknown"),
    ],
)
def test_partner_domain(url, domain):
    assert partner_domain(url) == domain


def test_existing_currency_keeps_its_spelling():
    result = apply_parameter_changes("https://www.partner.com/book?Currency=USD&x=1", currency="BRL")

    assert result.url == "https://www.partner.com/book?Currency=BRL&x=1"
    assert result.modified
    assert result.domain == "partner.com"


def test_missing_currency_is_appended():
    assert apply_parameter_changes("https://partner.com/book", currency="BRL").url == (
        "https://partner.com/book?currency=BRL"
    )
    assert apply_parameter_changes("https://partner.com/book?a=1", currency="EUR").url == (
        "https://partner.com/book?a=1&currency=EUR"
    )


def test_encoded_currency_is_replaced():
    result = apply_parameter_changes("https://partner.com/b?state=currency%3AUSD", currency="BRL")
    assert result.url == "https://partner.com/b?state=currency%3ABRL"


def test_portuguese_normalizes_existing_locale():
    result = apply_parameter_changes("https://partner.com/b?locale=en-US", language="pt")
    assert result.url == "https://partner.com/b?locale=pt-BR"
    assert result.modified


def test_portuguese_locale_is_appended_when_missing():
    result = apply_parameter_changes("https://partner.com/b?a=1", language="pt-BR")
    assert result.url == "https://partner.com/b?a=1&locale=pt-BR"


def test_other_language_is_not_appended():
    result = apply_parameter_changes("https://partner.com/b?a=1", language="en-US")
    assert result.url == "https://partner.com/b?a=1"
    assert not result.modified


def test_other_language_replaces_existing_value():
    result = apply_parameter_changes("https://partner.com/b?lang=pt", language="es")
    assert result.url == "https://partner.com/b?lang=es"


def test_ubfly_fixed_parameters():
    result = apply_parameter_changes(
        "https://ubfly.br.com/flight?Currency=USD&Locale=EN", currency="BRL", language="pt-BR"
    )
    assert result.url == "https://ubfly.br.com/flight?Currency=BRL&Locale=PT"
    assert result.modified
    assert result.domain == "ubfly.br.com"


def test_nothing_requested_leaves_url_alone():
    result = apply_parameter_changes("https://partner.com/b?a=1")
    assert result.url == "https://partner.com/b?a=1"
    assert not result.modified


def test_empty_url():
    result = apply_parameter_changes("", currency="BRL")
    assert result.url == ""
    assert result.domain == "unknown"
