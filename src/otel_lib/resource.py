# -*- coding: utf-8 -*-
"""
Resource 实现

Resource 作为来源信息附加在每一批导出的 Metric / 日志上，构造后不可修改。
"""

import socket
from typing import Dict, Optional

from opentelemetry.sdk.resources import Resource

from otel_lib.config import Config

SERVICE_NAME_KEY = "service.name"
ENTERPRISE_NUMBER_KEY = "enterprise.number"


def get_resource_attributes(
    service_name: str,
    enterprise_number: Optional[str] = None,
    attributes: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """
    构建 Resource 属性

    service.name 总是第一个属性，自定义属性不能覆盖它。
    """
    attrs: Dict[str, str] = {SERVICE_NAME_KEY: service_name}
    if enterprise_number:
        attrs[ENTERPRISE_NUMBER_KEY] = enterprise_number
    for key, value in (attributes or {}).items():
        if key in (SERVICE_NAME_KEY, ENTERPRISE_NUMBER_KEY):
            continue
        attrs[key] = value
    return attrs


def create_resource(
    service_name: str,
    enterprise_number: Optional[str] = None,
    attributes: Optional[Dict[str, str]] = None,
) -> Resource:
    """创建 Resource"""
    # Resource.create 会合并 SDK 默认属性（telemetry.sdk.*），这里只保留配置的属性
    return Resource(get_resource_attributes(service_name, enterprise_number, attributes))


def create_resource_from_config(config: Config) -> Resource:
    """从配置创建 Resource"""
    return create_resource(
        service_name=config.service_name,
        enterprise_number=config.enterprise_number,
        attributes=config.resource_attributes,
    )


def get_host_name() -> str:
    """获取主机名，失败时返回空字符串"""
    try:
        return socket.gethostname()
    except OSError:
        return ""
