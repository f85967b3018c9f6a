"""依赖容器模块，负责单例化创建工具目录、健康探测、广播器与作业服务对象。"""

from __future__ import annotations

from functools import lru_cache

from verifyhub.application.dispatcher import ToolDispatcher
from verifyhub.application.job_manager import JobManager
from verifyhub.config import Settings, get_settings
from verifyhub.domain.tools.base import BaseTool
from verifyhub.domain.tools.registry import ToolCatalog, default_tools
from verifyhub.domain.tools.router import ToolRouter
from verifyhub.infra.broadcast.broadcaster import EventBroadcaster
from verifyhub.infra.capability.script import ScriptCapability
from verifyhub.infra.health.probe import HealthProbe


def build_tool_catalog(settings: Settings) -> ToolCatalog:
    """按配置构建工具目录，每个工具绑定到对应编译产物的脚本能力。
    参数:
    - settings: 运行配置，提供产物根目录、构建路径与运行时命令。
    返回:
    - 完整的工具目录；缺少绑定时构建失败。
    """
    command = (settings.tool_runtime_command, *settings.tool_runtime_flags_list())

    def bind(tool: BaseTool) -> ScriptCapability:
        return ScriptCapability(
            tool=tool,
            script_path=settings.tool_build_dir() / tool.artifact,
            working_dir=settings.tool_artifact_root,
            command=command,
        )

    tools = default_tools(actus_url=settings.actus_server_url)
    catalog = ToolCatalog.from_tools(tools, bind)
    catalog.ensure_complete(tool.name for tool in tools)
    return catalog


@lru_cache(maxsize=1)
def get_tool_catalog() -> ToolCatalog:
    """获取工具目录单例。
    返回:
    - 按函数签名返回对应结果；异常场景会抛出业务异常。
    """
    return build_tool_catalog(get_settings())


@lru_cache(maxsize=1)
def get_tool_router() -> ToolRouter:
    return ToolRouter(get_tool_catalog())


@lru_cache(maxsize=1)
def get_health_probe() -> HealthProbe:
    """获取产物健康探测器单例。
    返回:
    - 按函数签名返回对应结果；异常场景会抛出业务异常。
    """
    settings = get_settings()
    return HealthProbe(
        root=settings.tool_artifact_root,
        build_path=settings.tool_build_path,
        artifacts=get_tool_catalog().artifacts(),
        mode=settings.execution_mode,
    )


@lru_cache(maxsize=1)
def get_broadcaster() -> EventBroadcaster:
    """获取事件广播器单例。
    返回:
    - 按函数签名返回对应结果；异常场景会抛出业务异常。
    """
    return EventBroadcaster(queue_size=get_settings().broadcast_queue_size)


@lru_cache(maxsize=1)
def get_dispatcher() -> ToolDispatcher:
    """获取工具调度器单例。
    返回:
    - 按函数签名返回对应结果；异常场景会抛出业务异常。
    """
    settings = get_settings()
    return ToolDispatcher(
        catalog=get_tool_catalog(),
        health_probe=get_health_probe(),
        timeout_seconds=settings.execution_timeout_seconds,
        execution_mode=settings.execution_mode,
    )


@lru_cache(maxsize=1)
def get_job_manager() -> JobManager:
    """获取作业管理服务单例。
    返回:
    - 按函数签名返回对应结果；异常场景会抛出业务异常。
    """
    return JobManager(
        settings=get_settings(),
        dispatcher=get_dispatcher(),
        broadcaster=get_broadcaster(),
    )


async def shutdown_container_resources() -> None:
    """关闭广播器并清理依赖容器缓存。
    返回:
    - 按函数签名返回对应结果；异常场景会抛出业务异常。
    """
    if get_broadcaster.cache_info().currsize:
        await get_broadcaster().close()
    reset_container_caches()


def reset_container_caches() -> None:
    """按依赖顺序清理缓存，确保后续请求可重新构建全新实例。"""
    for provider in (
        get_job_manager,
        get_dispatcher,
        get_broadcaster,
        get_health_probe,
        get_tool_router,
        get_tool_catalog,
    ):
        provider.cache_clear()
