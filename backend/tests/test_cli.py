from datetime import timedelta

from sqlalchemy import update

from stockledger.extensions import db
from stockledger.models import VariantStock
from stockledger.services import reservation_service
from stockledger.time_utils import utcnow


def test_register_and_adjust(cli_runner, db_session, stock_of):
    result = cli_runner.invoke(args=["stock", "register-variant", "VAR-1", "--sku", "SAREE-RED-M"])
    assert result.exit_code == 0, result.output
    assert "Registered variant VAR-1" in result.output

    result = cli_runner.invoke(
        args=["stock", "adjust", "VAR-1", "25", "--reason", "restock", "--actor", "ops@example.com"]
    )
    assert result.exit_code == 0, result.output
    assert "on_hand=25" in result.output
    assert stock_of("VAR-1") == (25, 0)


def test_adjust_negative_change(cli_runner, make_variant, stock_of):
    make_variant("VAR-1", on_hand=5)

    result = cli_runner.invoke(
        args=["stock", "adjust", "VAR-1", "-2", "--reason", "damage", "--actor", "ops@example.com"]
    )

    assert result.exit_code == 0, result.output
    assert stock_of("VAR-1") == (3, 0)


def test_adjust_business_error_is_reported(cli_runner, make_variant, stock_of):
    make_variant("VAR-1", on_hand=1)
    reservation_service.reserve("VAR-1", 1)

    result = cli_runner.invoke(
        args=["stock", "adjust", "VAR-1", "-1", "--reason", "damage", "--actor", "ops@example.com"]
    )

    assert result.exit_code == 1
    assert "below reserved" in result.output
    assert stock_of("VAR-1") == (1, 1)


def test_adjust_rejects_checkout_reason(cli_runner, make_variant):
    make_variant("VAR-1", on_hand=1)

    result = cli_runner.invoke(
        args=["stock", "adjust", "VAR-1", "1", "--reason", "checkout_commit", "--actor", "ops@example.com"]
    )

    assert result.exit_code == 2


def test_levels_and_history(cli_runner, make_variant):
    make_variant("VAR-1", on_hand=3)
    make_variant("VAR-2", on_hand=40)

    result = cli_runner.invoke(args=["stock", "levels", "--low-only"])
    assert result.exit_code == 0, result.output
    assert "LOW VAR-1" in result.output
    assert "VAR-2" not in result.output

    result = cli_runner.invoke(args=["stock", "history", "VAR-1"])
    assert result.exit_code == 0, result.output
    assert "restock" in result.output
    assert "ops@test" in result.output


def test_history_unknown_variant(cli_runner, db_session):
    result = cli_runner.invoke(args=["stock", "history", "NOPE"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_sweep(cli_runner, make_variant, stock_of):
    make_variant("VAR-1", on_hand=3)
    reservation_service.reserve("VAR-1", 2, now=utcnow() - timedelta(hours=1))

    result = cli_runner.invoke(args=["stock", "sweep"])

    assert result.exit_code == 0, result.output
    assert "expired 1" in result.output
    assert stock_of("VAR-1") == (3, 0)


def test_reconcile_detects_then_fixes(cli_runner, make_variant, stock_of):
    make_variant("VAR-1", on_hand=6)
    db.session.execute(update(VariantStock).where(VariantStock.variant_id == "VAR-1").values(reserved=4))
    db.session.commit()

    result = cli_runner.invoke(args=["stock", "reconcile"])
    assert result.exit_code == 1
    assert "DRIFT VAR-1" in result.output

    result = cli_runner.invoke(args=["stock", "reconcile", "--variant", "VAR-1", "--fix"])
    assert result.exit_code == 0, result.output
    assert "FIXED VAR-1" in result.output
    assert stock_of("VAR-1") == (6, 0)


def test_reconcile_clean(cli_runner, make_variant):
    make_variant("VAR-1", on_hand=6)

    result = cli_runner.invoke(args=["stock", "reconcile"])

    assert result.exit_code == 0
    assert "0 drifted" in result.output


def test_adjust_correction_with_options_first(cli_runner, make_variant, stock_of):
    make_variant("VAR-1", on_hand=5)

    result = cli_runner.invoke(
        args=["stock", "adjust", "--reason", "correction", "--actor", "ops@example.com", "VAR-1", "-3"]
    )

    assert result.exit_code == 0, result.output
    assert "-3 (correction)" in result.output
    assert stock_of("VAR-1") == (2, 0)
