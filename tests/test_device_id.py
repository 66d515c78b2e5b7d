import sys

import pytest

from endledger.domain.exceptions import DeviceIdTimeout, DeviceIdUnavailable
from endledger.skland.device_id import SubprocessDeviceIdProvider


def python_command(code: str) -> list[str]:
    return [sys.executable, "-c", code]


@pytest.mark.asyncio()
async def test_last_output_line_is_the_device_id():
    provider = SubprocessDeviceIdProvider(python_command("print('noise'); print('B1234')"))
    assert await provider.get_device_id(user_agent="ua") == "B1234"


@pytest.mark.asyncio()
async def test_inputs_reach_the_generator_through_env():
    code = "import os; print(os.environ['SMSDK_USER_AGENT'] + '|' + os.environ['SMSDK_TIMEOUT'])"
    provider = SubprocessDeviceIdProvider(python_command(code), timeout=5.0, cache_seconds=0)
    assert await provider.get_device_id(user_agent="agent/1.0") == "agent/1.0|5000"


@pytest.mark.asyncio()
async def test_result_cached_per_input_tuple(tmp_path):
    counter = tmp_path / "count"
    code = (
        "import pathlib, os; p = pathlib.Path(os.environ['COUNTER']); "
        "n = int(p.read_text()) + 1 if p.exists() else 1; p.write_text(str(n)); print('id' + str(n))"
    )
    provider = SubprocessDeviceIdProvider(python_command(code), extra_env={"COUNTER": str(counter)})

    assert await provider.get_device_id(user_agent="a") == "id1"
    assert await provider.get_device_id(user_agent="a") == "id1"
    assert await provider.get_device_id(user_agent="b") == "id2"

    provider.clear_cache()
    assert await provider.get_device_id(user_agent="a") == "id3"


@pytest.mark.asyncio()
async def test_empty_output_is_an_error():
    provider = SubprocessDeviceIdProvider(python_command("pass"))
    with pytest.raises(DeviceIdUnavailable, match="no output"):
        await provider.get_device_id()


@pytest.mark.asyncio()
async def test_nonzero_exit_is_an_error():
    provider = SubprocessDeviceIdProvider(python_command("import sys; sys.stderr.write('bad sdk'); sys.exit(3)"))
    with pytest.raises(DeviceIdUnavailable, match="bad sdk"):
        await provider.get_device_id()


@pytest.mark.asyncio()
async def test_hung_generator_is_killed(monkeypatch):
    monkeypatch.setattr("endledger.skland.device_id.KILL_GRACE_SECONDS", 0.0)
    provider = SubprocessDeviceIdProvider(python_command("import time; time.sleep(30)"), timeout=0.3)
    with pytest.raises(DeviceIdTimeout):
        await provider.get_device_id()


@pytest.mark.asyncio()
async def test_unconfigured_provider_names_the_setting(tmp_path):
    provider = SubprocessDeviceIdProvider.from_settings("node", str(tmp_path / "missing.js"))
    with pytest.raises(DeviceIdUnavailable, match="ENDLEDGER_DEVICE_ID_SDK_PATH"):
        await provider.get_device_id()

    with pytest.raises(DeviceIdUnavailable, match="ENDLEDGER_DEVICE_ID_COMMAND"):
        await SubprocessDeviceIdProvider([]).get_device_id()


@pytest.mark.asyncio()
async def test_missing_executable_is_reported():
    provider = SubprocessDeviceIdProvider(["/nonexistent/generator-binary"])
    with pytest.raises(DeviceIdUnavailable, match="Cannot start"):
        await provider.get_device_id()


@pytest.mark.asyncio()
async def test_cached_id_expires_after_cache_seconds(tmp_path):
    counter = tmp_path / "count"
    code = (
        "import pathlib, os; p = pathlib.Path(os.environ['COUNTER']); "
        "n = int(p.read_text()) + 1 if p.exists() else 1; p.write_text(str(n)); print('id' + str(n))"
    )
    now = [0.0]
    provider = SubprocessDeviceIdProvider(
        python_command(code),
        cache_seconds=60,
        extra_env={"COUNTER": str(counter)},
        clock=lambda: now[0],
    )

    assert await provider.get_device_id(user_agent="a") == "id1"
    now[0] = 59
    assert await provider.get_device_id(user_agent="a") == "id1"
    now[0] = 61
    assert await provider.get_device_id(user_agent="a") == "id2"
