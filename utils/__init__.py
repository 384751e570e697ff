"""
Utility package setup.

Enables pandas Copy-on-Write globally so fold slices and feature views
are never copied until something writes to them. From pandas 3.0 on this
is the only mode and the option is deprecated.
"""

import pandas as pd

if int(pd.__version__.split('.')[0]) < 3:
    # Reduce implicit copies across the pipeline.
    pd.options.mode.copy_on_write = True
