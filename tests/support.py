"""
Shared models and base policy for the test suite.
"""

from fieldroles import MappingSchemaProvider, Policy, condition

# Every test policy reads its schema from this table; test modules add
# their own resource types to it.
schema = MappingSchemaProvider()


class Resource:
    """Plain resource identified by id, with a fake query scope."""

    def __init__(self, id):
        self.id = id

    def where(self, option):
        return f"scope with {option}"

    def __repr__(self):
        return f"{type(self).__name__}({self.id!r})"


class User:
    def __init__(self, id="current_user"):
        self.id = id


class BasePolicy(Policy):
    schema_provider = schema

    @condition("basic_role")
    def is_basic_role(self):
        return self.user is not None

    @condition("enhanced_role")
    def is_enhanced_role(self):
        return self.resource.id == "enhanced"


def resource_id_is(name):
    """Role condition: the resource id equals the role name."""
    return lambda policy: policy.resource.id == name
