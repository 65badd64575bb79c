from __future__ import annotations

import math
from collections import Counter

import pytest

from redflags.consolidator import consolidate_signals
from redflags.indicators import (
    ConcentrationIndicator,
    ModificationsIndicator,
    NonCompetitiveIndicator,
    PriceOutliersIndicator,
    SingleBidIndicator,
    SplittingIndicator,
)
from redflags.indicators.base import fmt_usd
from redflags.indicators.splitting import period_key, parse_iso_date
from redflags.signals import QueryContext
from redflags.stats import iqr_upper_fence, quartiles, round1
from .fixtures import make_award, make_transaction


def _run(indicator, awards, settings=None):
    indicator.configure(settings or {})
    for a in awards:
        indicator.fold(a)
    return indicator.finalize()


# R001


def test_single_bid_rate_per_agency():
    awards = [
        make_award(number_of_offers_received=1),
        make_award(number_of_offers_received="1"),
        make_award(number_of_offers_received=4),
        make_award(number_of_offers_received=2),
        make_award(number_of_offers_received=5),
    ]
    signals = _run(SingleBidIndicator(), awards)
    assert len(signals) == 1
    s = signals[0]
    assert s.entity_type == "agency"
    assert s.entity_name == "Department of Defense"
    assert s.value == 40.0
    assert s.threshold == 20.0
    assert s.severity == "high"
    assert len(s.affected_awards) == 2


def test_single_bid_severity_bands():
    # 1 of 8 = 12.5%: between threshold/2 and threshold
    awards = [make_award(number_of_offers_received=1)] + [
        make_award(number_of_offers_received=3) for _ in range(7)
    ]
    assert _run(SingleBidIndicator(), awards)[0].severity == "medium"

    awards = [make_award(number_of_offers_received=1)] + [
        make_award(number_of_offers_received=3) for _ in range(19)
    ]
    assert _run(SingleBidIndicator(), awards)[0].severity == "low"


def test_single_bid_skips_non_competitive_and_missing_fields():
    ind = SingleBidIndicator()
    awards = [
        make_award(extent_competed="C", number_of_offers_received=1),
        make_award(number_of_offers_received=None),
        make_award(extent_competed=None, number_of_offers_received=1),
    ]
    assert _run(ind, awards) == []
    meta = ind.get_metadata()
    assert meta.data_coverage.total_records == 3
    assert meta.data_coverage.records_with_required_fields == 1


def test_single_bid_any_extent_when_competitive_type_not_required():
    awards = [make_award(extent_competed="C", number_of_offers_received=1)]
    signals = _run(SingleBidIndicator(), awards, {"require_competitive_type": False})
    assert len(signals) == 1
    assert signals[0].value == 100.0


# R002


def test_non_competitive_by_recipient():
    awards = [make_award(recipient_name="SOLE SOURCE LLC", extent_competed="C") for _ in range(4)]
    awards += [
        make_award(recipient_name="HALF CO", extent_competed="B"),
        make_award(recipient_name="HALF CO", extent_competed="A"),
        make_award(recipient_name="OPEN INC", extent_competed="A"),
    ]
    signals = _run(NonCompetitiveIndicator(), awards)
    by_name = {s.entity_name: s for s in signals}
    assert set(by_name) == {"SOLE SOURCE LLC", "HALF CO"}
    assert by_name["SOLE SOURCE LLC"].value == 100.0
    assert by_name["SOLE SOURCE LLC"].severity == "high"
    assert by_name["HALF CO"].value == 50.0
    assert by_name["HALF CO"].severity == "medium"
    assert signals[0].entity_name == "SOLE SOURCE LLC"


def test_non_competitive_custom_codes():
    awards = [make_award(extent_competed="NDO"), make_award(extent_competed="X")]
    signals = _run(NonCompetitiveIndicator(), awards, {"codes_to_flag": ["X"]})
    assert len(signals) == 1
    assert signals[0].affected_awards == (awards[1].award_id,)


# R003


def test_splitting_cluster_below_threshold():
    awards = [
        make_award(award_amount=amt, start_date=d)
        for amt, d in [
            (240_000, "2024-01-10"),
            (241_000, "2024-02-01"),
            (242_000, "2024-02-20"),
            (243_000, "2024-03-28"),
        ]
    ]
    signals = _run(SplittingIndicator(), awards, {"thresholds": [250_000], "band_width_pct": 0.1})
    assert len(signals) == 1
    s = signals[0]
    assert s.value == 4
    assert s.threshold == 250_000
    assert s.severity == "medium"
    assert len(s.affected_awards) == 4


def test_splitting_separates_periods():
    awards = [
        make_award(award_amount=240_000, start_date="2024-01-10"),
        make_award(award_amount=241_000, start_date="2024-02-10"),
        make_award(award_amount=242_000, start_date="2024-04-10"),
        make_award(award_amount=243_000, start_date="2024-05-10"),
    ]
    assert _run(SplittingIndicator(), awards) == []
    assert len(_run(SplittingIndicator(), awards, {"period": "year"})) == 1


def test_splitting_high_when_cluster_doubles_minimum():
    awards = [make_award(award_amount=230_000 + i * 1000, start_date="2024-07-01") for i in range(6)]
    signals = _run(SplittingIndicator(), awards)
    assert signals[0].severity == "high"


def test_splitting_ignores_unparseable_dates():
    ind = SplittingIndicator()
    _run(ind, [make_award(start_date="not-a-date"), make_award(start_date="")])
    assert ind.get_metadata().data_coverage.records_with_required_fields == 0


def test_period_key():
    d = parse_iso_date("2024-11-03T00:00:00")
    assert period_key(d, "quarter") == "FY2024-Q4"
    assert period_key(d, "year") == "FY2024"


# R004


def test_concentration_dominant_vendor():
    awards = [
        make_award(recipient_name="ACME CORP", award_amount=800_000, awarding_agency="GSA"),
        make_award(recipient_name="OTHER INC", award_amount=200_000, awarding_agency="GSA"),
    ]
    signals = _run(ConcentrationIndicator(), awards, {"vendor_share_threshold": 0.3})
    assert len(signals) == 1
    s = signals[0]
    assert s.entity_name == "ACME CORP"
    assert s.value == pytest.approx(80.0)
    assert s.severity == "high"


def test_concentration_first_level_wins():
    awards = [
        make_award(recipient_name="ACME CORP", award_amount=500_000, awarding_sub_agency="Army"),
        make_award(recipient_name="B", award_amount=500_000, awarding_sub_agency="Navy"),
    ]
    signals = _run(ConcentrationIndicator(), awards)
    names = [s.entity_name for s in signals]
    # both hold 50% at the agency level; the 100% sub-agency shares are not re-reported
    assert sorted(names) == ["ACME CORP", "B"]
    assert all(s.value == 50.0 for s in signals)
    assert all(s.severity == "medium" for s in signals)


def test_concentration_share_threshold_setting():
    awards = [
        make_award(recipient_name="BIG", award_amount=600_000, awarding_agency=f"A{i}", awarding_sub_agency=None)
        for i in range(3)
    ]
    awards += [
        make_award(recipient_name=f"SMALL{i}", award_amount=2_000_000, awarding_agency=f"A{i}", awarding_sub_agency=None)
        for i in range(3)
    ]
    signals = _run(ConcentrationIndicator(), awards, {"vendor_share_threshold": 0.6})
    # SMALLi holds ~77% of agency Ai; BIG stays near 23% at every level
    assert {s.entity_name for s in signals} == {"SMALL0", "SMALL1", "SMALL2"}

    signals = _run(ConcentrationIndicator(), awards, {"vendor_share_threshold": 0.2})
    assert Counter(s.entity_name for s in signals)["BIG"] == 3


def _two_agency_awards():
    return [
        make_award(award_id="G1", recipient_name="ACME CORP", award_amount=900_000, awarding_agency="GSA", awarding_sub_agency=None),
        make_award(award_id="G2", recipient_name="G-OTHER", award_amount=100_000, awarding_agency="GSA", awarding_sub_agency=None),
        make_award(award_id="D1", recipient_name="ACME CORP", award_amount=5_000_000, awarding_agency="DOE", awarding_sub_agency=None),
        make_award(award_id="D2", recipient_name="D-OTHER", award_amount=1_000_000, awarding_agency="DOE", awarding_sub_agency=None),
    ]


def test_concentration_same_vendor_in_two_agencies():
    awards = _two_agency_awards()
    signals = _run(ConcentrationIndicator(), awards)
    assert [(s.entity_name, s.value) for s in signals] == [("ACME CORP", 90.0), ("ACME CORP", 83.3)]
    assert [s.affected_awards for s in signals] == [("G1",), ("D1",)]

    reordered = _run(ConcentrationIndicator(), list(reversed(awards)))
    assert sorted(s.to_dict()["value"] for s in reordered) == [83.3, 90.0]

    (finding,) = consolidate_signals(signals, awards)
    assert finding.indicator_id == "R004"
    assert finding.signal_count == 2
    assert finding.total_dollar_value == 5_900_000


def test_concentration_flags_naics_sector_only():
    awards = [
        make_award(recipient_name="NICHE", award_amount=400_000, awarding_agency="GSA", awarding_sub_agency=None, naics_code="111111")
        for _ in range(3)
    ]
    awards.append(
        make_award(recipient_name="OTHER", award_amount=100_000, awarding_agency="GSA", awarding_sub_agency=None, naics_code="111111")
    )
    # one award each: too few for their sectors to qualify
    awards += [
        make_award(recipient_name=f"BIG{c}", award_amount=2_000_000, awarding_agency="GSA", awarding_sub_agency=None, naics_code=f"222{n}")
        for n, c in enumerate("ABC", start=1)
    ]
    (s,) = _run(ConcentrationIndicator(), awards)
    assert s.entity_name == "NICHE"
    assert s.value == 92.3
    assert s.severity == "high"
    assert "NAICS 111111" in s.context and "sector" in s.context
    assert len(s.affected_awards) == 3

    assert _run(ConcentrationIndicator(), awards, {"min_sector_spend": 2_000_000}) == []
    assert _run(ConcentrationIndicator(), awards, {"min_sector_awards": 5}) == []


def test_concentration_caps_naics_signals():
    awards = []
    for i in range(12):
        code = f"33{i:02d}"
        awards.append(
            make_award(recipient_name=f"D{i}", award_amount=600_000 + 20_000 * i, awarding_agency="DOC",
                       awarding_sub_agency=None, naics_code=code)
        )
        awards += [
            make_award(recipient_name=f"FILL-{i}-{x}", award_amount=250_000, awarding_agency="DOC",
                       awarding_sub_agency=None, naics_code=code)
            for x in "ab"
        ]
    signals = _run(ConcentrationIndicator(), awards)
    assert len(signals) == 10
    assert {s.entity_name for s in signals} == {f"D{i}" for i in range(2, 12)}

    assert len(_run(ConcentrationIndicator(), awards, {"max_naics_signals": 3})) == 3


def test_concentration_flags_sub_agency_only():
    awards = [
        make_award(recipient_name="SUBV", award_amount=750_000),
        make_award(recipient_name="X", award_amount=250_000),
    ]
    awards += [
        make_award(recipient_name=f"N{i}", award_amount=600_000, awarding_sub_agency="Department of the Navy")
        for i in range(1, 11)
    ]
    (s,) = _run(ConcentrationIndicator(), awards)
    assert s.entity_name == "SUBV"
    assert s.value == 75.0
    assert s.severity == "high"
    assert "Department of the Army" in s.context


def test_concentration_skips_non_finite_amounts():
    awards = [
        make_award(recipient_name="ACME CORP", award_amount=800_000, awarding_agency="GSA"),
        make_award(recipient_name="OTHER INC", award_amount=200_000, awarding_agency="GSA"),
        make_award(recipient_name="GHOST", award_amount=float("nan"), awarding_agency="GSA"),
    ]
    ind = ConcentrationIndicator()
    (s,) = _run(ind, awards)
    assert s.entity_name == "ACME CORP"
    assert s.value == 80.0
    cov = ind.get_metadata().data_coverage
    assert (cov.total_records, cov.records_with_required_fields) == (3, 2)


def test_concentration_tautology_guard():
    awards = [
        make_award(recipient_name="ACME CORP", award_amount=900_000),
        make_award(recipient_name="OTHER INC", award_amount=100_000),
    ]
    ind = ConcentrationIndicator()
    ind.set_query_context(QueryContext.from_filters(recipient="  acme   corp "))
    assert _run(ind, awards) == []


def test_concentration_sums_match_group_totals():
    awards = [
        make_award(
            recipient_name=f"V{i % 4}",
            award_amount=10_000 * (i + 1) + 0.37,
            awarding_agency=f"AG{i % 3}",
            awarding_sub_agency=f"SUB{i % 5}",
            naics_code=f"54{i % 2}",
        )
        for i in range(40)
    ]
    ind = ConcentrationIndicator()
    _run(ind, awards)
    for _, groups in ind.levels():
        for group in groups.values():
            total = sum(s.amount for s in group.by_recipient.values())
            assert math.isclose(total, group.total_amount, rel_tol=1e-9)
            assert all(0.0 <= share <= 1.0 for share in group.shares().values())
            assert 0.0 < group.hhi() <= 10_000.0 + 1e-6


# R005


def test_modifications_rollup_count_and_growth():
    awards = [
        make_award(award_id="MANY", modification_count=7, award_amount=100_000, total_obligation=110_000),
        make_award(award_id="GREW", modification_count=1, award_amount=100_000, total_obligation=300_000),
        make_award(award_id="FINE", modification_count=2, award_amount=100_000, total_obligation=120_000),
        make_award(award_id="NODATA"),
    ]
    ind = ModificationsIndicator()
    signals = _run(ind, awards)
    by_id = {s.entity_id: s for s in signals}
    assert set(by_id) == {"MANY", "GREW"}
    assert by_id["MANY"].severity == "medium"
    assert by_id["MANY"].threshold == 5
    assert by_id["GREW"].severity == "high"
    assert by_id["GREW"].value == pytest.approx(300.0)
    assert by_id["GREW"].threshold == pytest.approx(200.0)
    assert by_id["GREW"].entity_name == f"GREW ({awards[1].recipient_name})"
    assert ind.get_metadata().data_coverage.records_with_required_fields == 3


def test_modifications_from_transactions():
    award = make_award(award_id="TX")
    txns = [make_transaction("TX", modification_number="0", obligation=100_000)]
    txns += [make_transaction("TX", modification_number=f"P0000{i}") for i in range(1, 7)]
    txns += [make_transaction("TX", modification_number="P00009", obligation=0.0)]

    ind = ModificationsIndicator()
    ind.configure({})
    ind.fold(award)
    ind.fold_transactions("TX", txns)
    ind.fold_transactions("UNKNOWN", txns)
    signals = ind.finalize()
    assert len(signals) == 1
    assert "6 modifications" in signals[0].context
    assert ind.get_metadata().data_coverage.records_with_required_fields == 1
    assert ind.uses_transactions


# R006


def test_price_outlier_iqr_flags_only_extreme():
    amounts = [95_000, 100_000, 105_000, 108_000, 110_000, 500_000]
    awards = [make_award(naics_code="236220", award_amount=a) for a in amounts]
    signals = _run(PriceOutliersIndicator(), awards, {"method": "iqr", "iqr_multiplier": 1.5})
    assert len(signals) == 1
    s = signals[0]
    assert s.entity_id == awards[-1].award_id
    assert s.entity_type == "award"
    assert s.threshold == 125_000
    assert s.severity == "medium"


def test_price_outlier_psc_fallback_and_min_group():
    awards = [make_award(naics_code=None, psc_code="R425", award_amount=a) for a in (10, 11, 12, 1000)]
    assert _run(PriceOutliersIndicator(), awards) == []
    awards.append(make_award(naics_code=None, psc_code="R425", award_amount=13))
    signals = _run(PriceOutliersIndicator(), awards)
    assert [s.value for s in signals] == [round1(1000 / (1046 / 5))]


def test_price_outlier_zscore_method():
    awards = [make_award(naics_code="1", award_amount=100) for _ in range(9)]
    awards.append(make_award(naics_code="1", award_amount=10_000))
    ind = PriceOutliersIndicator()
    signals = _run(ind, awards, {"method": "zscore", "zscore_threshold": 2.0})
    assert len(signals) == 1
    assert signals[0].severity == "high"
    assert "zscore_threshold" in ind.get_metadata().thresholds_used


def test_price_outlier_skips_non_finite_amounts():
    awards = [make_award(naics_code="236220", award_amount=a) for a in (100, 101, 102, 103, 104, 10_000)]
    awards += [
        make_award(naics_code="236220", award_amount=float("nan")),
        make_award(naics_code="236220", award_amount=float("inf")),
    ]
    ind = PriceOutliersIndicator()
    (s,) = _run(ind, awards)
    assert s.entity_id == awards[5].award_id
    assert s.threshold == round(108.5)
    assert ind.get_metadata().data_coverage.records_with_required_fields == 6


def test_price_outlier_unknown_method_keeps_default():
    ind = PriceOutliersIndicator()
    ind.configure({"method": "mad", "iqr_multiplier": "3"})
    assert ind.method == "iqr"
    assert ind.iqr_multiplier == 1.5


# shared helpers


def test_quartiles_average_neighbours_on_whole_rank():
    assert quartiles([1, 2, 3, 4]) == (1.5, 3.5)
    assert iqr_upper_fence([95_000, 100_000, 105_000, 108_000, 110_000, 500_000], 1.5) == 125_000


def test_fmt_usd():
    assert fmt_usd(1234567) == "$1,234,567"
    assert fmt_usd(10.5) == "$10.50"


@pytest.mark.parametrize(
    "indicator_cls",
    [
        SingleBidIndicator,
        NonCompetitiveIndicator,
        SplittingIndicator,
        ConcentrationIndicator,
        ModificationsIndicator,
        PriceOutliersIndicator,
    ],
)
def test_metadata_on_empty_input(indicator_cls):
    ind = indicator_cls()
    assert _run(ind, []) == []
    meta = ind.get_metadata()
    assert meta.id == ind.id
    assert meta.data_coverage.coverage_percent == 0.0
    assert meta.methodology
