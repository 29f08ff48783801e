from typing import Annotated, Any, Literal, Union
from pydantic import BaseModel, Field

class AzureAnalysisResult(BaseModel):
    provider: Literal["azure"] = "azure"
    analyze_result: dict[str, Any]  # AnalyzeResult.as_dict()

class MistralOcrResult(BaseModel):
    provider: Literal["mistral"] = "mistral"
    ocr_response: dict[str, Any]  # pages[].markdown

RawAnalysisResult = Annotated[
    Union[AzureAnalysisResult, MistralOcrResult],
    Field(discriminator="provider"),
]
