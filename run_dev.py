# run_dev.py
"""
Dev server for the Harmony chat API on http://localhost:5174 with auto-reload.

Backend and model come from the environment / .env.dev:
  INFERENCE_BACKEND=echo       no model file, replies echo the last user turn
  INFERENCE_BACKEND=llama      GGUF model from MODEL_CACHE_DIR/MODEL_NAME
                               (fetch it first with POST /model/download)
"""

import uvicorn

if __name__ == "__main__":
    uvicorn.run("harmony_chat.app:app", host="0.0.0.0", port=5174, reload=True)
