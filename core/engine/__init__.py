"""
Tree map engine.

The engine owns the feature store, the derived cluster index and the controllers
that react to viewport settles, selections and pointer events. Rendering, forms and
the backend are collaborators passed in by the host.
"""
