"""
e-SAJ Adapter - Consulta via Navegador
======================================

Consulta pública de primeiro grau do e-SAJ (TJSP) por nome da parte, usando
Selenium em modo headless. O Selenium é bloqueante, então cada busca roda em
uma thread (`asyncio.to_thread`) para não travar o fan-out da busca consolidada.

Estratégia:
- Selecionar "Nome da parte" no combo de pesquisa
- Preencher o nome e consultar
- Ler a lista de resultados (número, classe, assunto, data de distribuição)
"""

import asyncio
from typing import List, Optional

from selenium import webdriver
from selenium.common.exceptions import NoSuchElementException, TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import Select, WebDriverWait

from adapter_base import SourceAdapter
from config import settings
from errors import PermanentSourceError, TransientSourceError
from logger import logger
from schemas import ScrapedParty, ScrapedRecord, SearchOptions

RESULT_XPATH = "//div[contains(@id, 'divProcesso')]"
NUMBER_XPATH = ".//a[contains(@class, 'linkProcesso')]"
CLASSE_XPATH = ".//div[contains(@class, 'classeProcesso')]"
ASSUNTO_XPATH = ".//div[contains(@class, 'assuntoPrincipalProcesso')]"
DATA_XPATH = ".//div[contains(@class, 'dataLocalDistribuicaoProcesso')]"


class EsajBrowserAdapter(SourceAdapter):
    """
    Adapter de automação de navegador para o e-SAJ.

    Não extrai detalhes do processo: apenas a listagem, suficiente para
    consolidação com as demais fontes.
    """

    name = "esaj"

    def __init__(self, url: Optional[str] = None, headless: bool = True, wait_seconds: int = 10, max_results: int = 30):
        """
        Args:
            url: Página de consulta do e-SAJ
            headless: Executar navegador em modo headless
            wait_seconds: Tempo máximo de espera pelos elementos
            max_results: Número máximo de processos lidos por busca
        """
        self.url = url or settings.ESAJ_URL
        self.headless = headless
        self.wait_seconds = wait_seconds
        self.max_results = max_results

    def _init_driver(self) -> webdriver.Chrome:
        logger.info("Inicializando navegador Chrome...")
        chrome_options = Options()

        if self.headless:
            chrome_options.add_argument("--headless=new")

        chrome_options.add_argument("--no-sandbox")
        chrome_options.add_argument("--disable-dev-shm-usage")
        chrome_options.add_argument("--disable-gpu")
        chrome_options.add_argument("--window-size=1920,1080")

        try:
            return webdriver.Chrome(options=chrome_options)
        except WebDriverException as e:
            raise TransientSourceError(f"e-SAJ: falha ao iniciar navegador: {e.msg}", source=self.name) from e

    def _text(self, element, xpath: str) -> Optional[str]:
        try:
            return element.find_element(By.XPATH, xpath).text.strip() or None
        except NoSuchElementException:
            return None

    def _search_blocking(self, query: str) -> List[ScrapedRecord]:
        driver = self._init_driver()
        try:
            driver.get(self.url)
            wait = WebDriverWait(driver, self.wait_seconds)

            Select(wait.until(
                EC.presence_of_element_located((By.ID, "cbPesquisa"))
            )).select_by_value("NMPARTE")

            campo_nome = wait.until(EC.presence_of_element_located((By.ID, "campo_NMPARTE")))
            campo_nome.clear()
            campo_nome.send_keys(query)
            driver.find_element(By.ID, "botaoConsultarProcessos").click()

            try:
                wait.until(EC.presence_of_element_located((By.XPATH, f"{RESULT_XPATH} | //*[@id='mensagemRetorno']")))
            except TimeoutException as e:
                raise TransientSourceError("e-SAJ: timeout aguardando resultados", source=self.name) from e

            records = []
            for item in driver.find_elements(By.XPATH, RESULT_XPATH)[:self.max_results]:
                numero = self._text(item, NUMBER_XPATH)
                if not numero:
                    continue
                distribuicao = self._text(item, DATA_XPATH)
                records.append(ScrapedRecord(
                    source_system=self.name,
                    numero=numero,
                    classe=self._text(item, CLASSE_XPATH),
                    assunto=self._text(item, ASSUNTO_XPATH),
                    data_distribuicao=distribuicao.split(" - ")[0] if distribuicao else None,
                    partes=[ScrapedParty(nome=query)],
                    url=driver.current_url
                ))

            logger.info(f"✅ e-SAJ: {len(records)} processos encontrados")
            return records

        except (TransientSourceError, PermanentSourceError):
            raise
        except TimeoutException as e:
            raise TransientSourceError("e-SAJ: timeout carregando a página", source=self.name) from e
        except WebDriverException as e:
            raise TransientSourceError(f"e-SAJ: erro do navegador: {e.msg}", source=self.name) from e
        finally:
            try:
                driver.quit()
                logger.info("Navegador fechado")
            except WebDriverException as e:
                logger.warning(f"Falha ao fechar navegador: {e.msg}")

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[ScrapedRecord]:
        query = (query or "").strip()
        if len(query) < 3:
            raise PermanentSourceError("Nome deve ter pelo menos 3 caracteres.", source=self.name)
        return await asyncio.to_thread(self._search_blocking, query)
