import os
import unittest
import tempfile
import numpy as np
import h5py
from numpy.testing import assert_array_equal
from numpy.testing import assert_almost_equal as assertAE
from pffrg.coreSU2 import FrgCoreSU2
from pffrg.coreBlock import FrgCoreXYZ,FrgCoreTRI
from pffrg.coreFactory import newFrgCore
from pffrg.effectiveAction import EffectiveActionSU2
from pffrg.measurement import CorrelationSU2,CorrelationXYZ
from pffrg.loadManager import LoadManager
from pffrg.exceptions import ConfigurationError
from frgTestUtils import newContext,randomize

class countingMeasurement:
    def __init__(self,minCutoff=0.0,maxCutoff=np.inf,deferred=False):
        self.minCutoff=minCutoff
        self.maxCutoff=maxCutoff
        self.deferred=deferred
        self.cutoffs=[]

    def takeMeasurement(self,state,isMasterRank):
        self.cutoffs.append(state.cutoff)

class testFrgCoreSU2(unittest.TestCase):
    def setUp(self):
        self.context,self.spinModel=newContext()
        self.core=FrgCoreSU2(self.context,self.spinModel,[],{'threads':1})

    def test_initialState(self):
        core=self.core
        self.assertEqual(core.flowingFunctional.cutoff,10.0)
        dataSS=core.flowingFunctional.vertexTwoParticle.dataSS.reshape(18,2)
        assertAE(dataSS[:,1],0.25)
        assertAE(dataSS[:,0],0.0)

    def test_treeLevelSelfEnergy(self):
        core=self.core
        core.computeStep()
        assert_array_equal(core.flow.vertexSingleParticle.data,np.zeros(3))
        vertex=core.flow.vertexTwoParticle
        self.assertTrue(np.all(np.isfinite(vertex.dataSS)))
        self.assertTrue(np.all(np.isfinite(vertex.dataDD)))
        self.assertTrue(np.any(vertex.dataSS!=0))
        self.assertTrue(np.any(vertex.dataDD!=0))
        self.assertFalse(core.flow.isDiverged())

    def test_finalizeStep(self):
        core=self.core
        randomize(core.flow.vertexSingleParticle.data,1)
        randomize(core.flow.vertexTwoParticle.dataSS,2)
        randomize(core.flow.vertexTwoParticle.dataDD,3)
        before=[data.copy() for _,data in core.flowingFunctional.datasets()]
        core.finalizeStep(5.0)
        self.assertEqual(core.flowingFunctional.cutoff,5.0)
        for old,(_,new),(_,flow) in zip(before,core.flowingFunctional.datasets(),core.flow.datasets()):
            assertAE(new-old,-5.0*flow)

    def test_checkpointRoundTrip(self):
        core=self.core
        core.computeStep()
        core.finalizeStep(5.0)
        with tempfile.TemporaryDirectory() as tmp:
            checkpointFile=os.path.join(tmp,'test.checkpoint')
            core.flowingFunctional.writeCheckpoint(checkpointFile)
            restored=EffectiveActionSU2(self.context)
            self.assertTrue(restored.readCheckpoint(checkpointFile))
        self.assertEqual(restored.cutoff,5.0)
        for (_,a),(_,b) in zip(restored.datasets(),core.flowingFunctional.datasets()):
            assert_array_equal(a,b)

    def test_spinLength(self):
        core=FrgCoreSU2(self.context,self.spinModel,[],{'threads':1,'spinLength':'1.0'})
        self.assertEqual(core.spinLength,1.0)
        with self.assertRaises(ConfigurationError):
            FrgCoreSU2(self.context,self.spinModel,[],{'spinLength':'-1'})

    def test_nonHeisenbergModel(self):
        context,spinModel=newContext(modelName='dimer-xxz',modelOptions={'jxy':'1.0','jz':'0.5'})
        with self.assertRaises(ConfigurationError):
            FrgCoreSU2(context,spinModel,[],{'threads':1})

    def test_unknownOption(self):
        with self.assertLogs('pffrg.frgCore',level='WARNING'):
            FrgCoreSU2(self.context,self.spinModel,[],{'threads':1,'foo':'bar'})

class testMeasurementPolicy(unittest.TestCase):
    def setUp(self):
        self.context,self.spinModel=newContext()
        self.direct=countingMeasurement()
        self.deferred=countingMeasurement(deferred=True)
        self.windowed=countingMeasurement(minCutoff=2.0,maxCutoff=6.0)
        self.core=FrgCoreSU2(self.context,self.spinModel,[self.direct,self.deferred,self.windowed],{'threads':1})
        self.tmp=tempfile.TemporaryDirectory()
        self.dataFile=os.path.join(self.tmp.name,'test.data')

    def tearDown(self):
        self.tmp.cleanup()

    def test_policy(self):
        core=self.core
        self.assertTrue(core.postprocessingRequired())
        core.takeMeasurements(dataFile=self.dataFile)
        core.flowingFunctional.cutoff=5.0
        core.takeMeasurements(dataFile=self.dataFile)
        self.assertEqual(self.direct.cutoffs,[10.0,5.0])
        self.assertEqual(self.windowed.cutoffs,[5.0])
        self.assertEqual(self.deferred.cutoffs,[])
        with h5py.File(self.dataFile,'r') as hFile:
            self.assertEqual(sorted(hFile.keys()),['checkpoint_0','checkpoint_1'])

        core.takeMeasurements(postprocessing=True)
        self.assertEqual(self.deferred.cutoffs,[5.0])
        self.assertEqual(self.direct.cutoffs,[10.0,5.0])

    def test_deferAll(self):
        core=self.core
        core.deferMeasurements=True
        core.takeMeasurements(dataFile=self.dataFile)
        self.assertEqual(self.direct.cutoffs,[])
        core.takeMeasurements(postprocessing=True)
        self.assertEqual(self.direct.cutoffs,[10.0])
        self.assertEqual(self.deferred.cutoffs,[10.0])

class testFrgCoreBlock(unittest.TestCase):
    def flowSU2(self):
        context,spinModel=newContext()
        core=FrgCoreSU2(context,spinModel,[],{'threads':1})
        core.computeStep()
        return core.flow

    def test_xyzMatchesSU2(self):
        reference=self.flowSU2()
        context,spinModel=newContext()
        core=FrgCoreXYZ(context,spinModel,[],{'threads':1})
        core.computeStep()
        data=core.flow.vertexTwoParticle.data.reshape(18,4,2)
        for x in range(3):
            assertAE(data[:,x,:],reference.vertexTwoParticle.dataSS.reshape(18,2))
        assertAE(data[:,3,:],reference.vertexTwoParticle.dataDD.reshape(18,2))
        assert_array_equal(core.flow.vertexSingleParticle.data,np.zeros(3))

    def test_triMatchesSU2(self):
        reference=self.flowSU2()
        context,spinModel=newContext()
        core=FrgCoreTRI(context,spinModel,[],{'threads':1})
        core.computeStep()
        vertex=core.flow.vertexTwoParticle
        data=vertex.data.reshape(18,16,2)
        for a in range(3):
            assertAE(data[:,vertex.blockIndex[5*a],:],reference.vertexTwoParticle.dataSS.reshape(18,2))
        assertAE(data[:,vertex.blockIndex[15],:],reference.vertexTwoParticle.dataDD.reshape(18,2))

    def test_xyzModel(self):
        context,spinModel=newContext(modelName='dimer-xxz',modelOptions={'jxy':'1.0','jz':'0.5'})
        core=FrgCoreXYZ(context,spinModel,[],{'threads':1})
        core.computeStep()
        self.assertFalse(core.flow.isDiverged())
        core.finalizeStep(5.0)
        self.assertEqual(core.flowingFunctional.cutoff,5.0)
        data=core.flowingFunctional.vertexTwoParticle.data.reshape(18,4,2)
        assertAE(data[:,0,:],data[:,1,:])

    def test_diagonalModelRequired(self):
        context,spinModel=newContext(modelName='dimer-gamma',modelOptions={'j':'1.0','g':'0.5'})
        with self.assertRaises(ConfigurationError):
            FrgCoreXYZ(context,spinModel,[],{'threads':1})
        core=FrgCoreTRI(context,spinModel,[],{'threads':1})
        core.computeStep()
        self.assertFalse(core.flow.isDiverged())

def integrate(core,cutoffs=(5.0,1.0)):
    """Two Euler steps along the remaining cutoffs."""
    for cutoff in cutoffs:
        core.computeStep()
        core.finalizeStep(cutoff)
    return core.flowingFunctional

class testExtendedLattices(unittest.TestCase):
    def test_squareLattice(self):
        context,spinModel=newContext('square','square-xxz',2,{'jxy':'1.0','jz':'1.0'})
        size=context.lattice.size
        self.assertEqual(size,4)
        reference=integrate(FrgCoreSU2(context,spinModel,[],{'threads':1}))
        dataSS=reference.vertexTwoParticle.dataSS.reshape(18,size)
        dataDD=reference.vertexTwoParticle.dataDD.reshape(18,size)

        xyz=integrate(FrgCoreXYZ(context,spinModel,[],{'threads':1}))
        data=xyz.vertexTwoParticle.data.reshape(18,4,size)
        for x in range(3):
            assertAE(data[:,x,:],dataSS)
        assertAE(data[:,3,:],dataDD)
        assertAE(xyz.vertexSingleParticle.data,reference.vertexSingleParticle.data)

        tri=integrate(FrgCoreTRI(context,spinModel,[],{'threads':1}))
        vertex=tri.vertexTwoParticle
        data=vertex.data.reshape(18,16,size)
        for a in range(3):
            assertAE(data[:,vertex.blockIndex[5*a],:],dataSS)
        assertAE(data[:,vertex.blockIndex[15],:],dataDD)
        assertAE(tri.vertexSingleParticle.data,reference.vertexSingleParticle.data)

    def test_kitaevLattice(self):
        context,spinModel=newContext('honeycomb','honeycomb-kitaev',2,{'k':'1.0'})
        size=context.lattice.size
        self.assertEqual(size,3)
        xyz=integrate(FrgCoreXYZ(context,spinModel,[],{'threads':1}))
        tri=integrate(FrgCoreTRI(context,spinModel,[],{'threads':1}))
        self.assertFalse(xyz.isDiverged())
        dataXYZ=xyz.vertexTwoParticle.data.reshape(18,4,size)
        vertex=tri.vertexTwoParticle
        dataTRI=vertex.data.reshape(18,16,size)
        diagonal=[vertex.blockIndex[5*a] for a in range(4)]
        for a in range(4):
            assertAE(dataTRI[:,diagonal[a],:],dataXYZ[:,a,:])
        offDiagonal=[x for x in range(16) if x not in diagonal]
        assert_array_equal(dataTRI[:,offDiagonal,:],np.zeros((18,12,size)))
        assertAE(tri.vertexSingleParticle.data,xyz.vertexSingleParticle.data)

class testCorrelation(unittest.TestCase):
    def setUp(self):
        self.context,self.spinModel=newContext()
        self.tmp=tempfile.TemporaryDirectory()
        self.obsFile=os.path.join(self.tmp.name,'test.obs')

    def tearDown(self):
        self.tmp.cleanup()

    def test_freeCorrelation(self):
        state=EffectiveActionSU2(self.context)
        state.cutoff=1.0
        measurement=CorrelationSU2(self.context,self.obsFile)
        observables=dict(measurement.takeMeasurement(state,True))
        mesh,weights=self.context.frequency.integrationMesh()
        local=np.sum(weights/np.maximum(np.abs(mesh),1.0)**2)/(4*np.pi)
        assertAE(observables['SU2CorZZ'],[local,0.0])
        assertAE(observables['SU2CorDD'],[local,0.0])

    def test_outputFile(self):
        core=newFrgCore('SU2',self.context,self.spinModel,[{'name':'correlation'}],{'threads':1},defaultOutput=self.obsFile)
        core.takeMeasurements()
        core.flowingFunctional.cutoff=5.0
        core.takeMeasurements()
        with h5py.File(self.obsFile,'r') as hFile:
            for name in ('SU2CorZZ','SU2CorDD'):
                assert_array_equal(hFile[name+'/meta/rid'][()],[0,1])
                self.assertEqual(hFile[name+'/meta/sites'].shape,(2,3))
                self.assertEqual(sorted(hFile[name+'/data'].keys()),['measurement_0','measurement_1'])
                self.assertEqual(float(hFile[name+'/data/measurement_1'].attrs['cutoff']),5.0)
                self.assertEqual(hFile[name+'/data/measurement_0/data'].shape,(2,))

    def test_slaveRank(self):
        state=EffectiveActionSU2(self.context)
        CorrelationSU2(self.context,self.obsFile).takeMeasurement(state,False)
        self.assertFalse(os.path.exists(self.obsFile))

    def test_blockNames(self):
        context,spinModel=newContext(modelName='dimer-xxz',modelOptions={'jxy':'1.0','jz':'0.5'})
        core=newFrgCore('XYZ',context,spinModel,[{'name':'correlation','defer':'true'}],{'threads':1},defaultOutput=self.obsFile)
        self.assertIsInstance(core.measurements[0],CorrelationXYZ)
        self.assertTrue(core.measurements[0].deferred)
        observables=core.measurements[0].takeMeasurement(core.flowingFunctional,True)
        self.assertEqual([name for name,_ in observables],['XYZCorXX','XYZCorYY','XYZCorZZ','XYZCorDD'])

    def test_unknownNames(self):
        with self.assertRaises(ConfigurationError):
            newFrgCore('U1',self.context,self.spinModel)
        with self.assertRaises(ConfigurationError):
            newFrgCore('SU2',self.context,self.spinModel,[{'name':'susceptibility'}],defaultOutput=self.obsFile)

class testLoadManager(unittest.TestCase):
    def test_serialRun(self):
        for threads in (1,3):
            manager=LoadManager(threads=threads)
            self.assertTrue(manager.isMasterRank())
            self.assertEqual(manager.nRanks,1)
            a=np.zeros(10)
            b=np.zeros((10,2))
            stackId=manager.registerStack(10,lambda i:(float(i),[i,2*i]),[a,b])
            manager.run([stackId])
            assertAE(a,np.arange(10))
            assertAE(b[:,1],2*np.arange(10))

    def test_blockRange(self):
        manager=LoadManager(threads=1)
        manager.nRanks=4
        bounds=[manager._blockRange(10,r) for r in range(4)]
        self.assertEqual(bounds[0][0],0)
        self.assertEqual(bounds[-1][1],10)
        for (_,upper),(lower,_) in zip(bounds[:-1],bounds[1:]):
            self.assertEqual(upper,lower)

    def test_mpiCommunicator(self):
        try:
            from mpi4py import MPI
        except ImportError:
            self.skipTest('mpi4py is not available')
        manager=LoadManager(threads=1,comm=MPI.COMM_WORLD)
        a=np.zeros(6)
        manager.run([manager.registerStack(6,lambda i:(i*i,),[a])])
        assertAE(a,np.arange(6)**2)

if __name__=='__main__':
    unittest.main()
