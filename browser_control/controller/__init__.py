"""
Controller package.

The tool table lives in `controller.service`; import it from there. This package
init stays empty of imports because the action modules depend on `controller.views`.
"""
