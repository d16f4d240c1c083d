from farmwatch.metrics import ALL_METRICS, CHARTED_METRICS, FLOAT_SWITCH, ChartGroup, metrics_in_group


def test_metric_keys_and_names_are_unique() -> None:
    assert len({m.key for m in ALL_METRICS}) == len(ALL_METRICS)
    assert len({m.name for m in ALL_METRICS}) == len(ALL_METRICS)


def test_every_charted_metric_belongs_to_one_group() -> None:
    grouped = [m for g in ChartGroup for m in metrics_in_group(g)]
    assert sorted(m.name for m in grouped) == sorted(m.name for m in CHARTED_METRICS)
    assert FLOAT_SWITCH not in grouped
