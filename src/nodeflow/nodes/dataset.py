from ..errors import NodeExecutionError
from ..state import node_state
from .base import NodeHandler, get_value


class RoundRobin(NodeHandler):
    """Cycle through list items on each execution (0, 1, ..., N-1, 0, ...).

    Position is kept in the keyed state store under ``("round_robin", node_id)``.
    """

    node_type = "RoundRobin"
    node_label = "Round Robin"
    node_category = "Dataset"
    node_description = "Cycle through list items on each execution"
    state_kind = "round_robin"

    def __init__(self, store=None):
        self.store = store if store is not None else node_state

    def input_spec(self):
        return {
            "items": {"type": "list_string", "label": "ITEMS"},
            "reset": {"type": "boolean", "label": "RESET", "default": False, "optional": True},
        }

    def output_spec(self):
        return {
            "current": {"type": "string", "label": "STRING"},
            "index": {"type": "integer", "label": "INTEGER"},
        }

    def process(self, inputs, config):
        items = get_value("items", inputs, config, [])
        if not isinstance(items, list) or not items:
            raise NodeExecutionError("Items must be a non-empty list", field="items")
        reset = get_value("reset", inputs, config, False) in (True, 1, "true", "1")
        node_id = config.get("node_id") or "default"
        count = len(items)

        def advance(position):
            position = 0 if reset or position is None else position % count
            return (position + 1) % count

        old, _ = self.store.update(self.state_kind, node_id, advance)
        index = 0 if reset or old is None else old % count
        return {"current": items[index], "index": index}
