import random

from concur_kit.fan import FanResult, FanTask, drain, fan_in, fan_out, task_generator


def test_generator_yields_tasks_in_order():
    tasks = [FanTask(i, i * 10) for i in range(1, 6)]
    assert drain(task_generator(tasks, delay=0)) == tasks


def test_drained_channel_stays_closed():
    channel = task_generator([FanTask(1, 1)], delay=0)
    assert len(drain(channel)) == 1
    assert drain(channel) == []


def test_empty_generator():
    assert drain(task_generator([], delay=0)) == []


def test_fan_out_squares_each_task():
    tasks = [FanTask(1, 2), FanTask(2, 3), FanTask(3, 4)]
    outputs = fan_out(task_generator(tasks, delay=0), 2, (0, 0), random.Random(3))
    results = sorted(drain(fan_in(outputs)), key=lambda r: r.task_id)
    assert [r.result for r in results] == [4, 9, 16]


def test_every_task_processed_exactly_once():
    tasks = [FanTask(i, i + 1) for i in range(1, 31)]
    outputs = fan_out(task_generator(tasks, delay=0), 4, (0, 0.002), random.Random(7))
    assert len(outputs) == 4
    results = drain(fan_in(outputs))
    assert sorted(r.task_id for r in results) == [t.id for t in tasks]
    by_id = {t.id: t.data for t in tasks}
    assert all(r.result == by_id[r.task_id] ** 2 for r in results)


def test_fan_in_merges_all_sources():
    first = task_generator([FanTask(1, 1), FanTask(2, 2)], delay=0)
    second = task_generator([FanTask(3, 3)], delay=0)
    merged = drain(fan_in([first, second]))
    assert sorted(t.id for t in merged) == [1, 2, 3]


def test_fan_in_of_nothing_closes():
    assert drain(fan_in([])) == []


def test_zero_workers_gives_no_results():
    outputs = fan_out(task_generator([FanTask(1, 5)], delay=0), 0)
    assert outputs == []
    assert drain(fan_in(outputs)) == []


def test_single_worker_keeps_order():
    tasks = [FanTask(i, i) for i in range(1, 8)]
    (output,) = fan_out(task_generator(tasks, delay=0), 1, (0, 0))
    results = drain(output)
    assert [r.task_id for r in results] == [t.id for t in tasks]
    assert results[0] == FanResult(1, 1)