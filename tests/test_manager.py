import asyncio

from   conftest            import GraphBuilder, make_backend

from   macroflow.event_bus import EventBus, EventType
from   macroflow.manager   import GraphManager, load_graph
from   macroflow.schema    import ConstantNode, PrintFlow


def test_add_names_and_copies():
	bus    = EventBus()
	events = []
	bus.subscribe(None, events.append)
	manager = GraphManager(bus, backend_factory=lambda graph: make_backend())

	b = GraphBuilder()
	b.graph.options = None
	b.chain(PrintFlow(id="p", text="x"))

	async def scenario():
		first  = await manager.add(b.graph)
		second = await manager.add(b.graph)
		copy   = await manager.get(first)
		copy.nodes.clear()
		impl   = await manager.impl(first)
		return first, second, impl, await manager.list()

	first, second, impl, names = asyncio.run(scenario())

	assert (first, second) == ("graph_1", "graph_2")
	assert names == ["graph_1", "graph_2"]
	assert len(impl["graph"].nodes) == 2
	assert impl["graph"].options.name == "graph_1"
	assert impl["backend"] is not None
	assert b.graph.options is None
	assert EventType.MANAGER_GRAPH_ADDED in [e.event_type for e in events]


def test_save_and_load_files(tmp_path):
	manager = GraphManager(EventBus(), storage_dir=str(tmp_path))

	b = GraphBuilder("My Macro")
	b.chain(PrintFlow(id="p"))
	b.add(ConstantNode(id="c", value=3))
	b.data("c", "out", "p", "text")
	(tmp_path / "broken.json").write_text("{not json", encoding="utf-8")

	async def scenario():
		await manager.add(b.graph)
		path = await manager.save("My Macro")
		await manager.clear()
		return path, await manager.load_all(), await manager.get("My Macro")

	path, names, graph = asyncio.run(scenario())

	assert path == str(tmp_path / "my_macro.json")
	assert names == ["My Macro"]
	assert graph.get_node("c").value == 3
	assert load_graph(path).connections[-1].target_port == "text"
