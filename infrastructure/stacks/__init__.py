from stacks.record_pipeline_stack import RecordPipelineStack

__all__ = ["RecordPipelineStack"]
