# Package marker; routers are imported directly from submodules.
