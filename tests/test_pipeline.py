import dataclasses
import random

import pytest

from concur_kit.pipeline import (
    AggregateStage,
    DataGeneratorStage,
    DataItem,
    FilterStage,
    ParallelStage,
    Pipeline,
    TransformStage,
)


def items(values):
    return [DataItem(i, v, "src") for i, v in enumerate(values, start=1)]


def test_generator_emits_count_items_in_range():
    out = list(DataGeneratorStage(10, random.Random(7), delay=0).process(None))
    assert [item.id for item in out] == list(range(1, 11))
    assert all(0 <= item.value < 100 for item in out)
    assert {item.stage for item in out} == {"Generator"}


def test_generator_is_reproducible_with_seed():
    a = list(DataGeneratorStage(5, random.Random(3), delay=0).process(None))
    b = list(DataGeneratorStage(5, random.Random(3), delay=0).process(None))
    assert a == b


def test_filter_keeps_matching_and_renames_stage():
    out = list(FilterStage("f", lambda i: i.value % 2 == 0).process(items([1, 2, 3, 4])))
    assert [item.value for item in out] == [2, 4]
    assert {item.stage for item in out} == {"f"}


def test_transform_applies_function():
    double = lambda i: dataclasses.replace(i, value=i.value * 2)
    source = items([1, 5, 9])
    out = list(TransformStage("t", double, delay=0).process(source))
    assert [o.value for o in out] == [2 * s.value for s in source]
    assert [o.id for o in out] == [s.id for s in source]
    assert {o.stage for o in out} == {"t"}


def test_aggregate_batches_and_remainder():
    out = list(AggregateStage("agg", 2).process(items([1, 2, 3, 4, 5])))
    assert [item.id for item in out] == [1, 2, 3]
    assert [item.value for item in out] == [3, 7, 5]
    assert {item.stage for item in out} == {"agg"}


def test_aggregate_preserves_total():
    values = list(range(20))
    out = list(AggregateStage("agg", 3).process(items(values)))
    assert sum(item.value for item in out) == sum(values)
    assert len(out) == 7


def test_aggregate_rejects_bad_batch_size():
    with pytest.raises(ValueError):
        AggregateStage("agg", 0)


def test_parallel_processes_every_item():
    source = items(range(12))
    plus = lambda i: dataclasses.replace(i, value=i.value + 10)
    out = list(ParallelStage("p", 3, plus, delay_range=(0, 0)).process(source))
    assert sorted(o.id for o in out) == [s.id for s in source]
    assert sorted(o.value for o in out) == sorted(s.value + 10 for s in source)
    assert all(o.stage.startswith("p-Worker") for o in out)
    assert {o.stage for o in out} <= {"p-Worker1", "p-Worker2", "p-Worker3"}


def test_parallel_propagates_errors():
    def boom(item):
        raise KeyError("bad")

    with pytest.raises(KeyError):
        list(ParallelStage("p", 2, boom, delay_range=(0, 0)).process(items([1, 2])))


def test_parallel_rejects_no_workers():
    with pytest.raises(ValueError):
        ParallelStage("p", 0, lambda i: i)


def test_empty_pipeline_yields_nothing():
    assert list(Pipeline("empty").execute()) == []


def test_add_stage_chains():
    pipeline = Pipeline("x")
    assert pipeline.add_stage(AggregateStage("a", 1)) is pipeline
    assert len(pipeline.stages) == 1


def test_full_pipeline_total_matches_generated_data():
    generated = list(DataGeneratorStage(10, random.Random(11), delay=0).process(None))
    pipeline = (
        Pipeline("p")
        .add_stage(DataGeneratorStage(10, random.Random(11), delay=0))
        .add_stage(FilterStage("f", lambda i: i.value % 2 == 0))
        .add_stage(ParallelStage("par", 3, lambda i: i, delay_range=(0, 0)))
        .add_stage(AggregateStage("agg", 3))
    )
    out = list(pipeline.execute())
    evens = [item.value for item in generated if item.value % 2 == 0]
    assert sum(item.value for item in out) == sum(evens)
    assert [item.id for item in out] == list(range(1, len(out) + 1))