"""
模块加载器
负责扫描、加载模块，并驱动模块的生命周期钩子

生命周期：install -> enable <-> disable -> uninstall
"""

import importlib
import logging
from typing import Dict, List, Optional, Any, Callable, Awaitable
from dataclasses import dataclass, field
from pathlib import Path
from datetime import datetime, timezone

from fastapi import FastAPI, APIRouter

from .events import event_bus, Events

logger = logging.getLogger(__name__)

MODULES_DIR = Path(__file__).parent.parent.resolve() / "modules"


# ==================== 生命周期钩子类型 ====================

# 异步钩子函数类型
LifecycleHook = Callable[[], Awaitable[None]]


@dataclass
class ModuleManifest:
    """模块清单协议"""
    id: str                          # 唯一标识
    name: str                        # 显示名称
    version: str                     # 版本号
    description: str = ""            # 描述
    icon: str = "📦"                 # 图标
    author: str = ""                 # 作者

    # 路由配置
    router_prefix: str = ""          # 路由前缀，如 /api/v1/blog
    router: Optional[APIRouter] = None

    # 菜单配置
    menu: Dict[str, Any] = field(default_factory=dict)

    # 对外暴露的 API 路径与前端页面（启用时向宿主注册）
    api_routes: List[str] = field(default_factory=list)
    pages: List[str] = field(default_factory=list)

    # 权限声明
    permissions: List[str] = field(default_factory=list)

    # 状态
    enabled: bool = True

    # ==================== 生命周期钩子 ====================
    # 首次安装时执行（表创建后）
    on_install: Optional[LifecycleHook] = None
    # 模块启用时执行
    on_enable: Optional[LifecycleHook] = None
    # 模块禁用时执行
    on_disable: Optional[LifecycleHook] = None
    # 模块卸载时执行
    on_uninstall: Optional[LifecycleHook] = None
    # 版本升级时执行
    on_upgrade: Optional[LifecycleHook] = None

    # ==================== 配置 ====================
    default_config: Optional[Callable[[], Dict[str, Any]]] = None
    config_validator: Optional[Callable[[Dict[str, Any]], bool]] = None

    def get_default_config(self) -> Dict[str, Any]:
        """模块默认配置"""
        return dict(self.default_config()) if self.default_config else {}

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """校验模块配置（未声明校验器时总是通过）"""
        if self.config_validator is None:
            return True
        return bool(self.config_validator(config))


@dataclass
class LoadedModule:
    """已加载模块信息"""
    manifest: ModuleManifest
    path: Path
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ModuleState:
    """模块状态"""
    module_id: str
    version: str
    enabled: bool
    installed_at: datetime
    last_enabled_at: Optional[datetime] = None
    config: Dict[str, Any] = field(default_factory=dict)


class ModuleLoader:
    """
    模块加载器 - 生命周期管理器

    模块按命名规范组织：modules/{id}/{id}_manifest.py、{id}_models.py、{id}_router.py
    """

    def __init__(self, app: Optional[FastAPI] = None, modules_dir: Optional[str] = None):
        self.app = app
        self.modules: Dict[str, LoadedModule] = {}
        self.modules_path = Path(modules_dir) if modules_dir else MODULES_DIR
        self._states: Dict[str, ModuleState] = {}

    def scan_modules(self) -> List[str]:
        """扫描模块目录"""
        if not self.modules_path.exists():
            logger.warning(f"模块目录不存在: {self.modules_path}")
            return []

        module_ids = []
        for item in sorted(self.modules_path.iterdir()):
            if item.is_dir() and not item.name.startswith("_"):
                manifest_file = item / f"{item.name}_manifest.py"
                if manifest_file.exists():
                    module_ids.append(item.name)
                    logger.debug(f"发现模块: {item.name}")

        return module_ids

    def load_manifest(self, module_id: str) -> Optional[ModuleManifest]:
        """加载模块清单"""
        module = importlib.import_module(f"modules.{module_id}.{module_id}_manifest")
        manifest = getattr(module, "manifest", None)
        if manifest is None:
            logger.error(f"清单文件缺少manifest对象: {module_id}")
        return manifest

    def load_module(self, module_id: str) -> bool:
        """加载单个模块：导入模型（注册数据表）并挂载路由"""
        if module_id in self.modules:
            logger.warning(f"模块已加载: {module_id}")
            return True

        manifest = self.load_manifest(module_id)
        if not manifest:
            return False

        module_path = self.modules_path / module_id

        if (module_path / f"{module_id}_models.py").exists():
            importlib.import_module(f"modules.{module_id}.{module_id}_models")
            logger.debug(f"加载模型成功: {module_id}")

        if (module_path / f"{module_id}_router.py").exists():
            router_module = importlib.import_module(f"modules.{module_id}.{module_id}_router")
            router = getattr(router_module, "router", None)
            if router is None:
                logger.error(f"加载路由失败 {module_id}: 无法找到 router 对象")
                return False

            manifest.router = router
            if self.app is not None:
                prefix = manifest.router_prefix or f"/api/v1/{module_id}"
                self.app.include_router(router, prefix=prefix, tags=[manifest.name])
                logger.debug(f"注册路由成功: {prefix}")

        self.modules[module_id] = LoadedModule(manifest=manifest, path=module_path)

        event_bus.emit(Events.MODULE_LOADED, "kernel", {"module_id": module_id})
        logger.debug(f"模块加载成功: {manifest.name} v{manifest.version}")
        return True

    def load_all(self) -> Dict[str, bool]:
        """加载所有模块"""
        return {module_id: self.load_module(module_id) for module_id in self.scan_modules()}

    async def _call_lifecycle_hook(self, module_id: str, hook: Optional[LifecycleHook], hook_name: str) -> bool:
        """调用生命周期钩子，失败时记录日志并返回 False"""
        if hook is None:
            return True

        try:
            logger.debug(f"调用模块 {module_id} 的 {hook_name} 钩子")
            await hook()
            return True
        except Exception as e:
            logger.error(f"模块 {module_id} 的 {hook_name} 钩子执行失败: {e}")
            return False

    def _require_loaded(self, module_id: str) -> ModuleManifest:
        loaded = self.modules.get(module_id)
        if loaded is None:
            raise KeyError(f"模块未加载: {module_id}")
        return loaded.manifest

    async def install_module(self, module_id: str) -> bool:
        """安装模块（写入默认配置，不自动启用）"""
        manifest = self._require_loaded(module_id)

        state = self._states.get(module_id)
        if state is not None:
            if state.version != manifest.version:
                await self._call_lifecycle_hook(module_id, manifest.on_upgrade, "on_upgrade")
                state.version = manifest.version
            return True

        ok = await self._call_lifecycle_hook(module_id, manifest.on_install, "on_install")
        if not ok:
            return False

        self._states[module_id] = ModuleState(
            module_id=module_id,
            version=manifest.version,
            enabled=False,
            installed_at=datetime.now(timezone.utc),
            config=manifest.get_default_config()
        )
        logger.info(f"模块安装成功（未启用）: {module_id}")
        return True

    async def enable_module(self, module_id: str) -> bool:
        """启用模块（未安装时先安装）"""
        manifest = self._require_loaded(module_id)
        if module_id not in self._states and not await self.install_module(module_id):
            return False

        ok = await self._call_lifecycle_hook(module_id, manifest.on_enable, "on_enable")
        if ok:
            state = self._states[module_id]
            state.enabled = True
            state.last_enabled_at = datetime.now(timezone.utc)
            logger.info(f"模块已启用: {module_id}")
        return ok

    async def disable_module(self, module_id: str) -> bool:
        """禁用模块"""
        manifest = self._require_loaded(module_id)
        state = self._states.get(module_id)
        if state is None or not state.enabled:
            return False

        ok = await self._call_lifecycle_hook(module_id, manifest.on_disable, "on_disable")
        if ok:
            state.enabled = False
            logger.info(f"模块已禁用: {module_id}")
        return ok

    async def uninstall_module(self, module_id: str) -> bool:
        """卸载模块（已启用时先禁用）"""
        manifest = self._require_loaded(module_id)
        state = self._states.get(module_id)
        if state is None:
            return False

        if state.enabled:
            await self.disable_module(module_id)

        await self._call_lifecycle_hook(module_id, manifest.on_uninstall, "on_uninstall")
        del self._states[module_id]
        event_bus.emit(Events.MODULE_UNLOADED, "kernel", {"module_id": module_id})
        logger.info(f"模块已卸载: {module_id}")
        return True

    async def enable_all(self):
        """启动时启用所有声明为启用的模块"""
        for module_id, loaded in self.modules.items():
            if loaded.manifest.enabled:
                await self.enable_module(module_id)

    def update_config(self, module_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        """更新模块配置（校验不通过时抛出 ValueError）"""
        manifest = self._require_loaded(module_id)
        state = self._states.get(module_id)
        if state is None:
            raise KeyError(f"模块未安装: {module_id}")

        merged = {**state.config, **config}
        if not manifest.validate_config(merged):
            raise ValueError(f"模块配置无效: {module_id}")
        state.config = merged
        return merged

    def get_module_state(self, module_id: str) -> Optional[ModuleState]:
        return self._states.get(module_id)

    def get_module(self, module_id: str) -> Optional[LoadedModule]:
        """获取指定模块"""
        return self.modules.get(module_id)

    def get_loaded_modules(self) -> List[ModuleManifest]:
        """获取所有已加载模块清单"""
        return [m.manifest for m in self.modules.values()]


# 全局加载器实例（在main.py中初始化）
module_loader: Optional[ModuleLoader] = None


def init_loader(app: FastAPI) -> ModuleLoader:
    """初始化模块加载器"""
    global module_loader
    module_loader = ModuleLoader(app)
    return module_loader


def get_module_loader() -> Optional[ModuleLoader]:
    """获取模块加载器实例"""
    return module_loader
