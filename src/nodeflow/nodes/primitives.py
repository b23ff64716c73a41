from .base import PrimitiveNode


class String(PrimitiveNode):
    node_type = "String"
    data_type = "string"
    default_value = ""
    input_options = {"multiline": True}


class Integer(PrimitiveNode):
    node_type = "Integer"
    data_type = "integer"
    default_value = 0


class Float(PrimitiveNode):
    node_type = "Float"
    data_type = "float"
    default_value = 0.0


class Boolean(PrimitiveNode):
    node_type = "Boolean"
    data_type = "boolean"
    default_value = False


class BigInt(PrimitiveNode):
    node_type = "BigInt"
    node_label = "Big Integer"
    node_description = "A constant big integer value (useful for seeds)"
    data_type = "bigint"
    default_value = -1
