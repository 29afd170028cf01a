from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    基础 Schema
    配置:
    - populate_by_name=True: 同时接受字段名与 camelCase 别名
    - from_attributes=True: 允许从 ORM 对象读取
    """
    model_config = ConfigDict(from_attributes=True, strict=False, populate_by_name=True, extra="ignore")
