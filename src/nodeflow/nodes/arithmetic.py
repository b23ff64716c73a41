import math

from .base import NodeHandler, get_value

OPERATIONS = ("add", "subtract", "multiply", "divide", "modulo", "power")


def _apply(operation: str, a: float, b: float) -> float:
    if operation == "subtract":
        return a - b
    if operation == "multiply":
        return a * b
    if operation == "divide":
        return 0.0 if b == 0 else a / b
    if operation == "modulo":
        return 0.0 if b == 0 else math.fmod(a, b)
    if operation == "power":
        return math.pow(a, b)
    return a + b


class MathOp(NodeHandler):
    node_type = "MathOp"
    node_label = "Math Operation"
    node_category = "Math/Arithmetic"
    node_description = "Perform arithmetic operations: add, subtract, multiply, divide, modulo, power"

    def input_spec(self):
        return {
            "a": {"type": "float", "label": "A", "default": 0.0},
            "b": {"type": "float", "label": "B", "default": 0.0},
            "operation": {
                "type": "enum",
                "label": "OPERATION",
                "default": "add",
                "options": [{"value": op, "label": op.capitalize()} for op in OPERATIONS],
            },
        }

    def output_spec(self):
        return {"result": {"type": "float", "label": "RESULT"}}

    def process(self, inputs, config):
        a = float(get_value("a", inputs, config, 0.0))
        b = float(get_value("b", inputs, config, 0.0))
        operation = get_value("operation", inputs, config, "add")
        return {"result": _apply(operation, a, b)}
