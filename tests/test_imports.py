"""
Smoke tests to verify all modules can be imported.
"""

def test_import_guard_core():
    import guard_core
    assert hasattr(guard_core, '__version__')


def test_import_validator():
    import validator
    assert hasattr(validator, '__version__')


def test_import_sanitizer():
    import sanitizer
    assert hasattr(sanitizer, '__version__')


def test_import_sandbox():
    import sandbox
    assert hasattr(sandbox, '__version__')


def test_import_llm():
    import llm
    assert hasattr(llm, '__version__')


def test_import_harness():
    import harness
    assert hasattr(harness, '__version__')


def test_import_cli_entry_point():
    from harness.cli import app
    assert app.info.help.startswith("Guard pipeline CLI")
