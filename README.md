# concur-kit

Small, thread-based concurrency patterns for Python. Each pattern lives in
its own module, and each module has a `demo()` function that runs the pattern
and prints or logs what happens. The package uses only the standard library.

| Module | What it gives you |
| --- | --- |
| `concur_kit.distributed` | `ConsistentHash` ring with virtual nodes (CRC-32), `DistributedWorker`, `WorkerManager` that queues tasks and routes them to workers |
| `concur_kit.load_balancer` | `Server`, `LoadBalancer`, plus `RoundRobinStrategy`, `LeastConnectionsStrategy` and `WeightedRoundRobinStrategy` |
| `concur_kit.message_queue` | `InMemoryMessageQueue` with topics, delayed retries and a dead-letter list; `SimpleConsumer`, `MessageProducer` |
| `concur_kit.connection_pool` | `ConnectionPool` with periodic health checks and idle eviction; simulated `DBConnection`; `DBClient` |
| `concur_kit.producer_consumer` | `produce`, `consume` and `run` over a bounded queue |
| `concur_kit.worker_pool` | `WorkerPool` summing `PoolTask`s into `TaskResult`s, quicker for higher priority |
| `concur_kit.rate_limiter` | Token-bucket `RateLimiter` with `allow()` and `wait(timeout)` |
| `concur_kit.pubsub` | `Publisher` and `Subscriber` with a bounded inbox per subscriber |
| `concur_kit.cancellation` | `Context` with `background`, `with_cancel`, `with_timeout` and `with_deadline` |
| `concur_kit.fan` | `task_generator`, `fan_out`, `fan_in`, `drain` |
| `concur_kit.circuit_breaker` | `CircuitBreaker` with `CLOSED` / `OPEN` / `HALF_OPEN` states; `UnstableService` |
| `concur_kit.semaphore` | `Semaphore`, `ResourcePool`, `ConnectionManager` |
| `concur_kit.actor` | `Actor`, `CalculatorActor`, `LoggerActor`, `ActorSystem`, `ask` |
| `concur_kit.pipeline` | Chainable `Pipeline` of generator, filter, transform, parallel and aggregate stages |
| `concur_kit.basics` | `send_messages`, `generator`, `square`, `run_job_pool` |

## Installing

```
pip install .
```

## Command line

```
concur-kit                 # prints "Hello, World!"
concur-kit --list          # lists the demo names
concur-kit pipeline        # runs one demo, e.g. pipeline, actor, semaphore
```

The demo names are `actor`, `basics`, `cancellation`, `circuit-breaker`,
`connection-pool`, `distributed`, `fan`, `load-balancer`, `message-queue`,
`pipeline`, `producer-consumer`, `pubsub`, `rate-limiter`, `semaphore` and
`worker-pool`.

## Examples

Routing tasks with a consistent hash ring:

```python
from concur_kit.distributed import ConsistentHash, DistributedWorker

ring = ConsistentHash(replicas=3)
for name in ("worker-1", "worker-2", "worker-3"):
    ring.add_worker(DistributedWorker(name, 0.01))

worker = ring.get_worker("task-07")   # the same task id always lands on the same worker
```

Protecting a flaky call with a circuit breaker:

```python
from concur_kit.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitOpenError

breaker = CircuitBreaker(CircuitBreakerConfig(reset_timeout=3.0, failure_ratio=0.5, min_request_count=10))
try:
    breaker.call(lambda: None)
except CircuitOpenError:
    ...                                # fail fast while the circuit is open
requests, failures, state = breaker.stats()
```

Building a processing pipeline:

```python
from concur_kit.pipeline import AggregateStage, DataGeneratorStage, FilterStage, Pipeline

pipeline = (
    Pipeline("numbers")
    .add_stage(DataGeneratorStage(10))
    .add_stage(FilterStage("evens", lambda item: item.value % 2 == 0))
    .add_stage(AggregateStage("sum", 3))
)
for batch in pipeline.execute():
    print(batch.id, batch.value)
```

## What it does not do

Everything runs in one process on threads. The servers, connections, workers
and services are simulations: `DBConnection` talks to no database,
`Server` handles no network traffic, and `InMemoryMessageQueue` keeps its
messages and dead letters in memory only, with no persistence.

## Running the tests

```
pip install ".[test]"
pytest
```