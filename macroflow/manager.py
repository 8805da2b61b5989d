# manager

import copy
import json


from   pathlib    import Path
from   typing     import Any, Callable, Dict, List, Optional


from   .backends  import ImplementedBackend
from   .event_bus import EventType, EventBus
from   .schema    import Graph, GraphOptions
from   .utils     import log_print


DEFAULT_STORAGE_DIR : str = "graphs"


class GraphManager:
	"""Named in-memory store of graphs, each paired with its capability backend once requested"""

	def __init__(self,
		event_bus       : EventBus,
		backend_factory : Optional[Callable[[Graph], ImplementedBackend]] = None,
		storage_dir     : str                                             = DEFAULT_STORAGE_DIR,
	):
		self._event_bus       : EventBus                                  = event_bus
		self._backend_factory : Callable[[Graph], ImplementedBackend]     = backend_factory or (lambda graph: ImplementedBackend())
		self._storage_dir     : Path                                      = Path(storage_dir)
		self._current_id      : int                                       = 0
		self._graphs          : Dict[str, Dict[str, Any]]                 = {}


	async def clear(self):
		await self.remove()
		self._current_id = 0
		self._graphs     = {}
		await self._event_bus.emit(
			event_type = EventType.MANAGER_CLEARED,
		)


	async def create(self, name: str, description: Optional[str] = None) -> Graph:
		graph = Graph(
			options = GraphOptions(
				name        = name,
				description = description,
			),
		)
		self._graphs[name] = self._make_graph(graph)
		await self._event_bus.emit(
			event_type = EventType.MANAGER_GRAPH_CREATED,
			graph_id   = name,
		)
		return graph


	async def add(self, graph: Graph, name: Optional[str] = None) -> str:
		graph = copy.deepcopy(graph)
		if not name:
			if graph.options and graph.options.name:
				name = graph.options.name
			else:
				self._current_id += 1
				name = f"graph_{self._current_id}"
		if graph.options is None:
			graph.options = GraphOptions(name=name)
		elif not graph.options.name:
			graph.options.name = name
		await self.remove(name)
		self._graphs[name] = self._make_graph(graph)
		await self._event_bus.emit(
			event_type = EventType.MANAGER_GRAPH_ADDED,
			graph_id   = name,
		)
		return name


	async def remove(self, name: Optional[str] = None) -> bool:
		if not name:
			names = list(self._graphs.keys())
		elif name in self._graphs:
			names = [name]
		else:
			return False
		for key in names:
			del self._graphs[key]
		await self._event_bus.emit(
			event_type = EventType.MANAGER_GRAPH_REMOVED,
			data       = {"names": names},
		)
		return True


	async def get(self, name: Optional[str] = None) -> Any:
		"""Copy of one graph, or of every graph keyed by name"""
		if not name:
			result = {key: value["graph"] for key, value in self._graphs.items()}
		elif name in self._graphs:
			result = self._graphs[name]["graph"]
		else:
			return None
		result = copy.deepcopy(result)
		await self._event_bus.emit(
			event_type = EventType.MANAGER_GRAPH_GOT,
			graph_id   = name,
		)
		return result


	async def impl(self, name: Optional[str] = None) -> Optional[Dict[str, Any]]:
		"""Stored graph (not a copy) with its backend, built on first use; the last added graph when no name is given"""
		if not name:
			name = list(self._graphs.keys())[-1] if self._graphs else None
		data = self._graphs.get(name)
		if not data:
			return None
		if data["backend"] is None:
			data["backend"] = self._backend_factory(data["graph"])
		return data


	async def list(self) -> List[str]:
		result = list(self._graphs.keys())
		await self._event_bus.emit(
			event_type = EventType.MANAGER_GRAPH_LISTED,
		)
		return result


	def _make_graph(self, graph: Graph) -> Dict[str, Any]:
		result = {
			"graph"   : graph,
			"backend" : None,
		}
		return result


	# =========================================================================
	# FILES
	# =========================================================================

	async def load(self, filepath: str, name: Optional[str] = None) -> Optional[str]:
		"""Add a graph from a JSON file; returns its name, or None when the file cannot be read"""
		try:
			graph = load_graph(filepath)
		except (OSError, ValueError) as e:
			log_print(f"Error reading graph file '{filepath}': {e}")
			return None
		if not name and not (graph.options and graph.options.name):
			name = Path(filepath).stem
		return await self.add(graph, name)


	async def load_all(self, directory: Optional[str] = None) -> List[str]:
		directory = Path(directory) if directory else self._storage_dir
		names     = []
		for filepath in sorted(directory.glob("*.json")):
			name = await self.load(str(filepath))
			if name:
				names.append(name)
		return names


	async def save(self, name: str, filepath: Optional[str] = None) -> Optional[str]:
		"""Write a stored graph as JSON; returns the file path"""
		data = self._graphs.get(name)
		if not data:
			return None
		if filepath is None:
			self._storage_dir.mkdir(parents=True, exist_ok=True)
			filepath = self._storage_dir / f"{name.lower().replace(' ', '_')}.json"
		save_graph(data["graph"], str(filepath))
		return str(filepath)


def load_graph(filepath: str) -> Graph:
	with open(filepath, "r", encoding="utf-8") as f:
		data = json.load(f)
	return Graph.model_validate(data)


def save_graph(graph: Graph, filepath: str):
	with open(filepath, "w", encoding="utf-8") as f:
		json.dump(graph.model_dump(mode="json"), f, indent=2)
