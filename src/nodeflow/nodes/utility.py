from ..state import node_state
from .base import NodeHandler, get_value


class Counter(NodeHandler):
    """Auto-increment integer for batch numbering.

    The counter lives in the keyed state store under ``("counter", node_id)``,
    so it keeps counting across jobs. The first run returns ``start``.
    """

    node_type = "Counter"
    node_category = "Utility/Random"
    node_description = "Auto-increment integer for batch numbering"
    state_kind = "counter"

    def __init__(self, store=None):
        self.store = store if store is not None else node_state

    def input_spec(self):
        return {
            "start": {"type": "integer", "label": "START", "default": 1, "optional": True},
            "reset": {"type": "boolean", "label": "RESET", "default": False, "optional": True},
        }

    def output_spec(self):
        return {"value": {"type": "integer", "label": "INTEGER"}}

    def process(self, inputs, config):
        start = int(get_value("start", inputs, config, 1))
        reset = get_value("reset", inputs, config, False) in (True, 1, "true", "1")
        node_id = config.get("node_id") or "default"

        def advance(current):
            value = start if reset or current is None else current
            return value + 1

        old, _ = self.store.update(self.state_kind, node_id, advance)
        return {"value": start if reset or old is None else old}


class PreviewText(NodeHandler):
    node_type = "PreviewText"
    node_label = "Preview Text"
    node_category = "Utility/Display"
    node_description = "Displays text content for preview and debugging"

    def input_spec(self):
        return {"text": {"type": "string", "label": "TEXT", "multiline": True, "configurable": False}}

    def process(self, inputs, config):
        return {"preview": str(get_value("text", inputs, config, ""))}


class Note(NodeHandler):
    node_type = "Note"
    node_category = "Utility/Display"
    node_description = "A note for adding comments and documentation to your workflow"

    def input_spec(self):
        return {"text": {"type": "string", "label": "TEXT", "default": "", "multiline": True}}

    def process(self, inputs, config):
        return {}


class Reroute(NodeHandler):
    node_type = "Reroute"
    node_category = "Utility/Flow"
    node_description = "Pass-through to organize edge routing"

    def input_spec(self):
        return {"value": {"type": "any", "label": "VALUE"}}

    def output_spec(self):
        return {"value": {"type": "any", "label": "VALUE"}}

    def process(self, inputs, config):
        return {"value": inputs.get("value")}
