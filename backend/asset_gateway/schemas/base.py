from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    基础 Schema
    配置:
    - from_attributes=True: 允许从对象属性读取
    - populate_by_name=True: 允许按字段名或别名构造
    """
    model_config = ConfigDict(from_attributes=True, strict=False, populate_by_name=True, extra="ignore")
