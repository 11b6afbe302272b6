"""
Inference subpackage -- tensors in, hidden states out.

Modules:
    tensors    -- TokenizedBatch -> named int64 model inputs
    runtime    -- load .onnx (ONNX Runtime) or .xml (OpenVINO IR) models
    session    -- the locked, replaceable session shared by callers
    converter  -- export / convert models for the runtimes above
"""

from textembed.inference.session import SessionManager, extract_hidden_states
from textembed.inference.tensors import ModelInputs, assemble_inputs
