import os
import sys
from typing import Dict, Optional

from dotenv import load_dotenv
from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings
from langchain_groq import ChatGroq

from pdf_chat.exception.custom_exception import PdfChatException
from pdf_chat.logger import GLOBAL_LOGGER as log
from pdf_chat.utils.config_loader import load_config

# provider name -> env variable holding its key
PROVIDER_KEYS = {
    "google": "GOOGLE_API_KEY",
    "groq": "GROQ_API_KEY",
}


class ApiKeyManager:
    def __init__(self, providers: set[str]):
        load_dotenv()
        self.keys: Dict[str, str] = {}

        required = sorted(PROVIDER_KEYS[p] for p in providers if p in PROVIDER_KEYS)

        # Iterate over the keys needed by the configured providers:
        for k in required:
            if val := os.getenv(k):
                self.keys[k] = val
                log.info(f"Loaded {k} from env")
            else:
                log.error(f"Missing required API key: {k}")

        if len(self.keys) != len(required):
            raise PdfChatException("Missing API Keys", sys)

    def get(self, key: str) -> str:
        return self.keys[key]


class ModelLoader:
    """
    Responsible for:
    - Loading embeddings
    - Loading the RAG LLM (query rewrite + grounded answer)
    """

    def __init__(self, config: Optional[dict] = None):
        self.config = config if config is not None else load_config()
        log.info("YAML config loaded | config_keys=%s", list(self.config.keys()))

        providers = {self.config["embedding_model"].get("provider", "google")}
        providers.update(
            llm_cfg["provider"] for llm_cfg in self.config.get("llm", {}).values()
        )

        # Validates env API keys for every configured provider up front
        self.api_key_mgr = ApiKeyManager(providers)
        self.api_keys = self.api_key_mgr.keys

    def load_embeddings(self):
        """
        Load and return embedding model from Google Generative AI.
        """
        try:
            model_name = self.config["embedding_model"]["model_name"]
            log.info("Loading embedding model | model=%s", model_name)
            return GoogleGenerativeAIEmbeddings(
                model=model_name, google_api_key=self.api_keys.get("GOOGLE_API_KEY")
            )
        except Exception as e:
            log.error("Error loading embedding model | error=%s", str(e))
            raise PdfChatException("Failed to load embedding model", e) from e

    def load_llm(self, role: str = "rag"):
        """
        Load and return the configured LLM model.
        Args:
            role: key under `llm` in config.yaml

        Returns:
            Configured LLM instance
        """
        if role not in self.config.get("llm", {}):
            log.error("LLM role not found in config | role=%s", role)
            raise ValueError(f"LLM role '{role}' not found in config")

        llm_config = self.config["llm"][role]

        provider = llm_config["provider"]
        model = llm_config["model_name"]
        temp = llm_config.get("temperature")
        max_t = llm_config.get("max_tokens")

        log.info(f"Loading LLM for role={role} | model={model}")

        if provider == "google":
            return ChatGoogleGenerativeAI(
                model=model,
                google_api_key=self.api_keys.get("GOOGLE_API_KEY"),
                temperature=temp,
                max_output_tokens=max_t,
            )

        if provider == "groq":
            return ChatGroq(
                model=model,
                api_key=self.api_keys.get("GROQ_API_KEY"),
                temperature=temp,
                max_tokens=max_t,
            )

        raise ValueError(f"Unsupported provider {provider}")
