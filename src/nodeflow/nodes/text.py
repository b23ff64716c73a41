import re

from ..errors import NodeValidationError
from .base import NodeHandler, get_value


class Concat(NodeHandler):
    node_type = "Concat"
    node_label = "Concatenate"
    node_category = "Text"
    node_description = "Joins two strings"

    def input_spec(self):
        return {
            "a": {"type": "string", "label": "A", "default": ""},
            "b": {"type": "string", "label": "B", "default": ""},
        }

    def output_spec(self):
        return {"result": {"type": "string", "label": "RESULT"}}

    def process(self, inputs, config):
        a = str(get_value("a", inputs, config, ""))
        b = str(get_value("b", inputs, config, ""))
        return {"result": a + b}


class RegexMatch(NodeHandler):
    node_type = "RegexMatch"
    node_label = "Regex Match"
    node_category = "Text/Regex"
    node_description = "Tests if text matches a regular expression pattern"

    def input_spec(self):
        return {
            "text": {"type": "string", "label": "TEXT", "multiline": True, "configurable": False},
            "pattern": {"type": "string", "label": "PATTERN", "default": "",
                        "description": "Regular expression pattern"},
        }

    def output_spec(self):
        return {"result": {"type": "boolean", "label": "BOOLEAN"}}

    def validate(self, inputs, config):
        pattern = str(get_value("pattern", inputs, config, ""))
        try:
            re.compile(pattern)
        except re.error as e:
            raise NodeValidationError.invalid_regex("pattern", pattern, str(e)) from e

    def process(self, inputs, config):
        text = str(get_value("text", inputs, config, ""))
        pattern = str(get_value("pattern", inputs, config, ""))
        if not pattern:
            return {"result": False}
        return {"result": re.search(pattern, text) is not None}
