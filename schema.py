# schema.py

"""
Reference schemas for the named numeric vectors of the SEIR model.

A fixed-parameter vector or initial-state vector is only accepted when its
names match the reference schema field by field, in order. Inputs built for
the older layout (population as the first fixed parameter, or a susceptible
compartment as the first state) are recognised and rejected with a message
pointing at the layout change.
"""

from collections import OrderedDict
from dataclasses import dataclass

import numpy as np
import pandas as pd

from config import (FIXED_PARAM_NAMES, INITIAL_STATE_NAMES,
                    LEGACY_FIXED_PARAM_FIRST, LEGACY_INITIAL_STATE_FIRST)
from errors import IncompatibleSchemaError


@dataclass(frozen=True)
class ParameterSchema:
    """An ordered list of field names plus the first name of its legacy layout."""
    label: str
    names: tuple
    legacy_first: str = None

    def validate(self, values):
        """
        Checks a named vector against the schema and returns it as an
        ordered mapping of floats.

        Args:
            values: A mapping or pandas Series of name -> number.

        Returns:
            OrderedDict: The values in schema order.

        Raises:
            IncompatibleSchemaError: If the names differ in any way.
        """
        names, numbers = _split_named_vector(self.label, values)

        if self.legacy_first is not None and names and names[0] == self.legacy_first:
            raise IncompatibleSchemaError(
                f"It appears `{self.label}` is set up for an older version of "
                f"this code (first name is '{self.legacy_first}'). Expected "
                f"names {list(self.names)}."
            )

        if len(names) != len(self.names):
            raise IncompatibleSchemaError(
                f"`{self.label}` has {len(names)} entries; expected "
                f"{len(self.names)}: {list(self.names)}."
            )
        for position, (got, expected) in enumerate(zip(names, self.names)):
            if got != expected:
                raise IncompatibleSchemaError(
                    f"`{self.label}` entry {position} is named '{got}'; expected "
                    f"'{expected}'. Required order: {list(self.names)}."
                )

        return OrderedDict((name, float(x)) for name, x in zip(names, numbers))


def _split_named_vector(label, values):
    if isinstance(values, pd.Series):
        return [str(k) for k in values.index], values.to_numpy(dtype=float)
    if hasattr(values, "keys"):
        names = [str(k) for k in values.keys()]
        return names, np.array([values[k] for k in values.keys()], dtype=float)
    raise IncompatibleSchemaError(
        f"`{label}` must be a named vector (mapping or pandas Series), "
        f"got {type(values).__name__}."
    )


FIXED_PARAMS_SCHEMA = ParameterSchema(
    label="pars", names=FIXED_PARAM_NAMES,
    legacy_first=LEGACY_FIXED_PARAM_FIRST,
)

INITIAL_STATE_SCHEMA = ParameterSchema(
    label="state_0", names=INITIAL_STATE_NAMES,
    legacy_first=LEGACY_INITIAL_STATE_FIRST,
)
