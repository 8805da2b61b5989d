import asyncio

from   macroflow.event_bus import EventBus, EventType, LogLevel


def test_history_is_bounded_and_filtered():
	bus = EventBus(max_history=3)

	async def scenario():
		for i in range(5):
			await bus.emit(EventType.NODE_STARTED, execution_id=f"run{i % 2}", node_id=f"n{i}")

	asyncio.run(scenario())

	assert [e.node_id for e in bus.get_event_history()] == ["n2", "n3", "n4"]
	assert [e.node_id for e in bus.get_event_history(execution_id="run0")] == ["n2", "n4"]
	assert [e.node_id for e in bus.get_event_history(limit=1)] == ["n4"]


def test_failing_subscriber_does_not_stop_others():
	bus  = EventBus()
	seen = []

	def broken(event):
		raise RuntimeError("boom")

	async def logs(event):
		seen.append(event.data)

	bus.subscribe(EventType.NODE_LOG, broken)
	bus.subscribe(None, logs)
	asyncio.run(bus.log("hello", LogLevel.WARNING, node_id="p"))

	assert seen == [{"message": "hello", "level": "warning"}]

	bus.unsubscribe(None, logs)
	asyncio.run(bus.log("again"))
	assert len(seen) == 1
