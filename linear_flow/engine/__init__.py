"""Workflow engine: session store, check engines and the operation pipeline.

Import from the submodules directly (``linear_flow.engine.pipeline`` etc.);
this package does not re-export them because the models depend on
``linear_flow.engine.types``.
"""
