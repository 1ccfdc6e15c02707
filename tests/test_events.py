from enricher.events import JOB_STARTED, STEP, EnrichmentEvent, EventBus


def test_every_subscriber_receives_events_until_unsubscribed():
    bus = EventBus()
    first = bus.subscribe()
    second = bus.subscribe()

    bus.publish(EnrichmentEvent(kind=JOB_STARTED, url="https://x.io"))
    bus.unsubscribe(second)
    bus.publish(EnrichmentEvent(kind=STEP, url="https://x.io", message="Classifying...", step=2))

    assert [first.get_nowait().kind for _ in range(2)] == [JOB_STARTED, STEP]
    assert second.get_nowait().kind == JOB_STARTED
    assert second.empty()
