from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from giftsync.app import GiftSyncApp, build_app
from giftsync.domain.errors import NotFoundError
from giftsync.domain.event_log import CanonicalEventLog
from giftsync.domain.model import EventType, GiftStatus, campaign_for
from giftsync.domain.tracking import LifecycleTracker
from tests.helpers.chain import (
    CLAIMER,
    CREATOR,
    PASSWORD,
    SALT,
    FakeEscrow,
    FakeFetcher,
    make_chain_log,
    make_on_chain_gift,
)
from tests.helpers.rpc import chain_config

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from giftsync.adapters.sqlalchemy import SqlAlchemyGiftUnitOfWork

CAMPAIGN = campaign_for(creator=CREATOR, gift_id=209)


@pytest.fixture
def app(
    escrow: FakeEscrow,
    fetcher: FakeFetcher,
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> GiftSyncApp:
    for gift_id in range(200, 209):
        escrow.add(make_on_chain_gift(gift_id, token_id=gift_id - 30))
    escrow.add(make_on_chain_gift(209, token_id=186))
    return build_app(
        chain=chain_config(),
        escrow=escrow,
        fetcher=fetcher,
        unit_of_work_factory=unit_of_work_factory,
    )


def _claim(**overrides: object) -> dict[str, object]:
    return {"tokenId": 186, "password": PASSWORD, "salt": SALT, "deviceId": "phone-1"} | overrides


def test_valid_claim_returns_gift_id_and_records_view(
    app: GiftSyncApp, unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork]
) -> None:
    assert app.validate_claim(_claim()) == {"valid": True, "giftId": 209}
    assert app.validate_claim(_claim()) == {"valid": True, "giftId": 209}

    with unit_of_work_factory() as uow:
        events = CanonicalEventLog(uow.repositories.events).read()

    assert [(event.event_type, event.gift_id) for event in events] == [
        (EventType.GIFT_VIEWED, 209)
    ]
    assert events[0].campaign_id == CAMPAIGN


def test_wrong_password_is_the_only_distinguished_failure(app: GiftSyncApp) -> None:
    assert app.validate_claim(_claim(password="secret1")) == {
        "valid": False,
        "error": "invalid_password",
    }


@pytest.mark.parametrize(
    "payload",
    [
        pytest.param(_claim(tokenId=9_999), id="unknown-token"),
        pytest.param(_claim(salt="0x1234"), id="malformed-salt"),
        pytest.param(_claim(password=""), id="empty-password"),
        pytest.param({"password": PASSWORD, "salt": SALT}, id="missing-token"),
        pytest.param(_claim(extra=True), id="unknown-field"),
    ],
)
def test_other_failures_are_indistinguishable(
    app: GiftSyncApp, payload: dict[str, object]
) -> None:
    assert app.validate_claim(payload) == {"valid": False}


def test_claimed_gift_is_not_valid(app: GiftSyncApp, escrow: FakeEscrow) -> None:
    escrow.add(make_on_chain_gift(209, token_id=186, status=GiftStatus.CLAIMED))

    assert app.validate_claim(_claim()) == {"valid": False}


def test_unexpected_failure_is_not_valid(app: GiftSyncApp, escrow: FakeEscrow) -> None:
    def explode(gift_id: int) -> None:
        raise RuntimeError(f"decoder bug for {gift_id}")

    escrow.get_gift = explode  # type: ignore[method-assign]

    assert app.validate_claim(_claim()) == {"valid": False}


def test_annotations_land_under_the_gift_id(app: GiftSyncApp) -> None:
    first = app.annotate_gift({"tokenId": 186, "emailEncrypted": "cipher", "emailHmac": "mac"})
    second = app.annotate_gift({"giftId": 209, "appointmentDate": "2025-03-01"})

    assert first["giftId"] == 209
    assert second["giftId"] == 209

    read = app.read_annotations(token_id=186)
    annotations = read["annotations"]
    assert isinstance(annotations, dict)
    assert read["giftId"] == 209
    assert annotations["emailEncrypted"] == "cipher"
    assert annotations["appointmentDate"] == "2025-03-01"
    assert "emailCapturedAt" in annotations
    assert "educationScore" not in annotations


def test_read_without_annotations(app: GiftSyncApp) -> None:
    assert app.read_annotations(gift_id=205) == {"giftId": 205, "annotations": None}


@pytest.mark.parametrize(
    "payload",
    [
        pytest.param({"tokenId": 186, "favouriteColour": "blue"}, id="unknown-field"),
        pytest.param({"emailEncrypted": "cipher"}, id="no-identifier"),
        pytest.param({"giftId": 209, "appointmentDuration": 0}, id="bad-duration"),
    ],
)
def test_annotation_payload_is_validated(app: GiftSyncApp, payload: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        app.annotate_gift(payload)


def test_annotation_for_unknown_token(app: GiftSyncApp) -> None:
    with pytest.raises(NotFoundError):
        app.annotate_gift({"tokenId": 9_999, "educationScore": 3})


def test_trigger_reconciliation_and_stats(
    app: GiftSyncApp, escrow: FakeEscrow, fetcher: FakeFetcher
) -> None:
    escrow.add(make_on_chain_gift(209, token_id=186, status=GiftStatus.CLAIMED))
    fetcher.head = 50
    fetcher.logs = [
        make_chain_log(
            EventType.GIFT_CREATED,
            209,
            10,
            token_id=186,
            payload={"creator": CREATOR, "amount": 150},
        ),
        make_chain_log(EventType.GIFT_CLAIMED, 209, 20, payload={"claimer": CLAIMER}),
    ]

    summary = app.trigger_reconciliation({"fromBlock": 0, "toBlock": 40})
    stats = app.campaign_stats(CAMPAIGN)

    assert summary == {"eventsProcessed": 2, "fromBlock": 0, "toBlock": 40}
    assert stats["stale"] is False
    assert stats["stats"] == {
        "total_gifts": 1,
        "claimed": 1,
        "returned": 0,
        "expired": 0,
        "viewed": 0,
        "total_value": 150,
    }


def test_reconciliation_request_is_validated(app: GiftSyncApp) -> None:
    with pytest.raises(ValidationError):
        app.trigger_reconciliation({"fromBlock": -1})


def test_stats_for_unknown_campaign(app: GiftSyncApp) -> None:
    assert app.campaign_stats("campaign_0xdeadbeef") == {
        "campaignId": "campaign_0xdeadbeef",
        "stale": False,
        "stats": None,
    }


def test_rebuild_counts_views(app: GiftSyncApp) -> None:
    app.validate_claim(_claim())

    (rollup,) = app.rebuild_rollups(CAMPAIGN)

    assert rollup.viewed == 1
    assert [item.campaign_id for item in app.rebuild_rollups()] == [CAMPAIGN]


def test_repair_gift_reports_camel_case(app: GiftSyncApp, tmp_path: Path) -> None:
    source = tmp_path / "legacy.jsonl"
    source.write_text(
        json.dumps({"key": "token:186", "emailEncrypted": "cipher", "tokenId": 186}) + "\n",
        encoding="utf-8",
    )
    app.import_legacy_details(source)

    report = app.repair_gift({"tokenId": 186, "giftId": 209})

    assert report["giftId"] == 209
    assert report["tokenId"] == 186
    assert "email_encrypted" in report["copiedFields"]  # type: ignore[operator]
    assert report["hasAnnotationData"] is True
    assert app.read_annotations(gift_id=209)["annotations"] is not None


def test_import_legacy_details_skips_bad_lines(app: GiftSyncApp, tmp_path: Path) -> None:
    source = tmp_path / "legacy.jsonl"
    source.write_text(
        "\n".join(
            [
                json.dumps({"key": "gift:209", "educationScore": 4, "claimer": CLAIMER}),
                "{not json",
                json.dumps({"key": "wallet:0xabc"}),
                "",
                json.dumps({"key": "token:186", "appointmentTime": "10:00", "oldColumn": 1}),
                json.dumps({"key": "gift:208", "educationScore": 250}),
            ]
        ),
        encoding="utf-8",
    )

    result = app.import_legacy_details(source)

    assert (result.read, result.imported, result.rejected) == (5, 2, [2, 3, 6])


def test_view_reaches_campaign_stats_without_a_reconcile(app: GiftSyncApp) -> None:
    app.validate_claim(_claim())
    app.validate_claim(_claim(deviceId="laptop-2"))
    app.validate_claim(_claim())

    stats = app.campaign_stats(CAMPAIGN)["stats"]

    assert isinstance(stats, dict)
    assert stats["viewed"] == 2


def test_claim_answer_survives_an_unexpected_tracking_failure(
    app: GiftSyncApp, monkeypatch: pytest.MonkeyPatch
) -> None:
    def broken(self: LifecycleTracker, event: object) -> bool:
        raise RuntimeError("event log schema mismatch")

    monkeypatch.setattr(LifecycleTracker, "record", broken)

    assert app.validate_claim(_claim()) == {"valid": True, "giftId": 209}


def test_education_score_is_capped(app: GiftSyncApp) -> None:
    with pytest.raises(ValidationError):
        app.annotate_gift({"giftId": 209, "educationScore": 250})

    annotated = app.annotate_gift({"giftId": 209, "educationScore": 100})
    annotations = annotated["annotations"]
    assert isinstance(annotations, dict)
    assert annotations["educationScore"] == 100


def test_tracked_value_and_expiry_reach_campaign_stats(app: GiftSyncApp) -> None:
    valued = app.track_event({"tokenId": 186, "eventType": "valued", "amountWei": 5_000})
    repeated = app.track_event({"giftId": 209, "eventType": "valued", "amountWei": 7_000})
    expired = app.track_event({"giftId": 209, "eventType": "expired"})

    assert valued["giftId"] == 209
    assert valued["campaignId"] == CAMPAIGN
    assert valued["recorded"] is True
    assert repeated["recorded"] is False
    assert repeated["eventId"] == valued["eventId"]
    assert expired["recorded"] is True

    stats = app.campaign_stats(CAMPAIGN)["stats"]
    assert isinstance(stats, dict)
    assert stats["total_value"] == 5_000
    assert stats["expired"] == 1


@pytest.mark.parametrize(
    "payload",
    [
        pytest.param({"giftId": 209, "eventType": "valued"}, id="value-without-amount"),
        pytest.param(
            {"giftId": 209, "eventType": "viewed", "amountWei": 1}, id="amount-on-view"
        ),
        pytest.param({"giftId": 209, "eventType": "claimed"}, id="escrow-only-kind"),
        pytest.param({"eventType": "expired"}, id="no-identifier"),
    ],
)
def test_tracked_event_payload_is_validated(
    app: GiftSyncApp, payload: dict[str, object]
) -> None:
    with pytest.raises(ValidationError):
        app.track_event(payload)


def test_tracking_an_unknown_gift(app: GiftSyncApp) -> None:
    with pytest.raises(NotFoundError):
        app.track_event({"giftId": 9_999, "eventType": "expired"})
