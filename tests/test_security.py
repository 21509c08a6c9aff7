import pytest

from docshelf.errors import (
    BlockedDomainError,
    ContentTooLargeError,
    EmptyContentError,
    InvalidHostError,
    SuspiciousContentError,
    SuspiciousURLError,
    UnsupportedSchemeError,
    URLTooLongError,
)
from docshelf.security import SecurityGate, sanitize_filename


def test_javascript_scheme_fails_even_for_trusted_host():
    gate = SecurityGate(trusted_domains=("github.com",))
    with pytest.raises(UnsupportedSchemeError):
        gate.validate_url("javascript:alert(1)//github.com")
    with pytest.raises(UnsupportedSchemeError):
        gate.validate_url("javascript://github.com/%0aalert(1)")


def test_scheme_and_host_required():
    gate = SecurityGate()
    with pytest.raises(UnsupportedSchemeError):
        gate.validate_url("ftp://example.com/file")
    with pytest.raises(InvalidHostError):
        gate.validate_url("https:///no-host")


def test_suspicious_pattern_in_untrusted_url():
    gate = SecurityGate(trusted_domains=())
    with pytest.raises(SuspiciousURLError) as exc:
        gate.validate_url("https://example.com/redirect?to=javascript:alert(1)")
    assert exc.value.pattern == "javascript:"


def test_trusted_host_skips_pattern_and_length_checks():
    gate = SecurityGate(trusted_domains=("docs.python.org",))
    gate.validate_url("https://docs.python.org/x?q=" + "a" * 3000)
    with pytest.raises(URLTooLongError):
        SecurityGate(trusted_domains=()).validate_url(
            "https://example.com/?q=" + "a" * 3000
        )


def test_trusted_matching_respects_label_boundaries():
    gate = SecurityGate(trusted_domains=("github.com",))
    assert gate.is_trusted("https://docs.github.com/en")
    assert gate.is_trusted("https://github.com/")
    assert not gate.is_trusted("https://evilgithub.com/")


def test_localhost_allowed_with_warning(caplog):
    gate = SecurityGate(trusted_domains=())
    with caplog.at_level("WARNING"):
        gate.validate_url("http://localhost:8000/docs")
    assert "localhost" in caplog.text


def test_blocked_domain():
    gate = SecurityGate(blocked_domains=("ads.example.com",))
    with pytest.raises(BlockedDomainError):
        gate.ensure_not_blocked("https://cdn.ads.example.com/page")
    gate.ensure_not_blocked("https://example.com/page")


def test_content_size_limits():
    gate = SecurityGate(max_document_size=10)
    with pytest.raises(EmptyContentError):
        gate.validate_content_size(0)
    with pytest.raises(ContentTooLargeError):
        gate.validate_content_size(11)
    gate.validate_content_size(10)


def test_script_alert_rejected_unless_trusted():
    gate = SecurityGate()
    with pytest.raises(SuspiciousContentError) as exc:
        gate.scan_content_for_threats("<script>alert('x')</script>")
    assert exc.value.pattern == "<script>alert("
    gate.scan_content_for_threats("<script>alert('x')</script>", trusted=True)


def test_repetitive_content_rejected():
    gate = SecurityGate()
    with pytest.raises(SuspiciousContentError):
        gate.scan_content_for_threats("ab" * 600)
    gate.scan_content_for_threats("ab" * 400)


def test_sanitize_filename():
    assert sanitize_filename('a<b>:c"d/e\\f|g?h*.md') == "a_b__c_d_e_f_g_h_.md"
    assert sanitize_filename("") == "document.txt"
    long_name = "x" * 300 + ".md"
    cleaned = sanitize_filename(long_name)
    assert len(cleaned) == 255
    assert cleaned.endswith(".md")
