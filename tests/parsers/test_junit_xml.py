"""Tests for the JUnit XML parser."""

from __future__ import annotations

from pathlib import Path

import pytest

from qas_cli.core.exceptions import ReportParseError
from qas_cli.core.models import ParserOptions, ResultStatus, SkipPolicy
from qas_cli.parsers.junit import JUnitParser, parse_junit_xml

SAMPLE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<testsuites tests="4" failures="1" errors="1" skipped="1">
  <testsuite name="CheckoutSuite" tests="4">
    <testcase name="PRJ-001: Add to cart" classname="cart.CartTest" time="1.5">
      <system-out>added item</system-out>
    </testcase>
    <testcase name="PRJ-002: Pay" classname="cart.PaymentTest" time="0.25">
      <failure message="expected 200" type="AssertionError">assert 500 == 200</failure>
      <system-err>stack &lt;trace&gt;</system-err>
    </testcase>
    <testcase name="PRJ-003: Refund" time="abc">
      <error message="connection refused"/>
      <failure message="should not win"/>
    </testcase>
    <testcase name="PRJ-004: Invoice" classname="cart.InvoiceTest" time="-1">
      <skipped message="not ready"/>
    </testcase>
  </testsuite>
</testsuites>
"""


async def parse(xml: str, base_dir: Path | None = None, **options) -> list:
    return await parse_junit_xml(xml, base_dir, ParserOptions(**options))


class TestJUnitParsing:
    """Tests for mapping test cases to results."""

    @pytest.mark.asyncio
    async def test_statuses(self) -> None:
        results = await parse(SAMPLE_XML)

        assert [r.status for r in results] == [
            ResultStatus.PASSED,
            ResultStatus.FAILED,
            ResultStatus.BLOCKED,
            ResultStatus.SKIPPED,
        ]

    @pytest.mark.asyncio
    async def test_folder_prefers_classname(self) -> None:
        results = await parse(SAMPLE_XML)

        assert results[0].folder == "cart.CartTest"
        assert results[2].folder == "CheckoutSuite"

    @pytest.mark.asyncio
    async def test_time_taken(self) -> None:
        results = await parse(SAMPLE_XML)

        assert results[0].time_taken == 1500
        assert results[1].time_taken == 250
        assert results[2].time_taken is None
        assert results[3].time_taken is None

    @pytest.mark.asyncio
    async def test_failure_with_stderr(self) -> None:
        results = await parse(SAMPLE_XML)

        message = results[1].message
        assert results[1].status is ResultStatus.FAILED
        assert "<pre><code>assert 500 == 200</code></pre>" in message
        assert "<pre><code>stack &lt;trace&gt;</code></pre>" in message

    @pytest.mark.asyncio
    async def test_error_uses_message_attribute(self) -> None:
        results = await parse(SAMPLE_XML)

        assert results[2].message == "<pre><code>connection refused</code></pre>"

    @pytest.mark.asyncio
    async def test_attachments_always_a_list(self) -> None:
        results = await parse(SAMPLE_XML)

        assert all(r.attachments == [] for r in results)

    @pytest.mark.asyncio
    async def test_bare_testsuite_root(self) -> None:
        xml = '<testsuite name="S"><testcase name="PRJ-001 a" /></testsuite>'

        results = await parse(xml)

        assert len(results) == 1
        assert results[0].folder == "S"

    @pytest.mark.asyncio
    async def test_multiple_failures_concatenated(self) -> None:
        xml = """<testsuite name="S"><testcase name="t">
            <failure>first</failure><failure>second</failure>
        </testcase></testsuite>"""

        results = await parse(xml)

        assert results[0].message == "<pre><code>first</code></pre><pre><code>second</code></pre>"


class TestSkipPolicy:
    """Tests for leaving captured output out of passing results."""

    XML = """<testsuite name="S">
      <testcase name="passing"><system-out>out-pass</system-out><system-err>err-pass</system-err></testcase>
      <testcase name="failing"><failure>boom</failure><system-out>out-fail</system-out></testcase>
    </testsuite>"""

    @pytest.mark.asyncio
    async def test_stdout_skipped_on_success(self) -> None:
        results = await parse(self.XML, skip_stdout=SkipPolicy.ON_SUCCESS)

        assert "out-pass" not in results[0].message
        assert "err-pass" in results[0].message
        assert "out-fail" in results[1].message

    @pytest.mark.asyncio
    async def test_stderr_skipped_on_success(self) -> None:
        results = await parse(self.XML, skip_stderr=SkipPolicy.ON_SUCCESS)

        assert "out-pass" in results[0].message
        assert "err-pass" not in results[0].message

    @pytest.mark.asyncio
    async def test_never_includes_everything(self) -> None:
        results = await parse(self.XML)

        assert "out-pass" in results[0].message
        assert "err-pass" in results[0].message


class TestJUnitAttachments:
    """Tests for [[ATTACHMENT|path]] references."""

    @pytest.mark.asyncio
    async def test_attachment_from_system_out(self, tmp_path: Path) -> None:
        (tmp_path / "shot.png").write_bytes(b"png")
        xml = """<testsuite name="S"><testcase name="PRJ-001 t">
            <system-out>
              [[ATTACHMENT|shot.png]]
            </system-out>
        </testcase></testsuite>"""

        results = await parse(xml, tmp_path)

        assert len(results[0].attachments) == 1
        assert results[0].attachments[0].filename == "shot.png"
        assert results[0].attachments[0].content == b"png"

    @pytest.mark.asyncio
    async def test_missing_attachment_is_recorded(self, tmp_path: Path) -> None:
        xml = """<testsuite name="S"><testcase name="PRJ-001 t">
            <system-out>[[ATTACHMENT|shot.png]]</system-out>
        </testcase></testsuite>"""

        results = await parse(xml, tmp_path)

        attachment = results[0].attachments[0]
        assert attachment.filename == "shot.png"
        assert attachment.content is None
        assert attachment.error is not None

    @pytest.mark.asyncio
    async def test_attachments_deduplicated(self, tmp_path: Path) -> None:
        (tmp_path / "a.log").write_text("a")
        xml = """<testsuite name="S"><testcase name="t">
            <failure message="[[ATTACHMENT|a.log]]">[[ATTACHMENT|a.log]]</failure>
            <system-out>[[ATTACHMENT|a.log]]</system-out>
        </testcase></testsuite>"""

        results = await parse(xml, tmp_path)

        assert [a.filename for a in results[0].attachments] == ["a.log"]


class TestJUnitErrors:
    """Tests for malformed documents."""

    def test_invalid_xml(self) -> None:
        with pytest.raises(ReportParseError, match="invalid XML"):
            JUnitParser.parse_string("<testsuites><testsuite>", "report.xml")

    def test_wrong_root(self) -> None:
        with pytest.raises(ReportParseError, match="<html>"):
            JUnitParser.parse_string("<html></html>", "report.xml")
